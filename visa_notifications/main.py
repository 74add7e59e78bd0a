"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from visa_notifications.api.notifications import router as notifications_router
from visa_notifications.config import get_settings
from visa_notifications.db.session import engine

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and create database tables on startup."""
    settings.validate()
    # Import models to register them with SQLModel
    from visa_notifications.models import ChannelDelivery, Notification  # noqa: F401
    SQLModel.metadata.create_all(engine)
    yield

app = FastAPI(
    title="Visa Portal Notification API",
    description="Notification delivery, retry and read-state API for the visa portal",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = [settings.FRONTEND_URL, "http://localhost:3000"]
cors_origins = [origin for origin in set(cors_origins) if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(notifications_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
