"""Environment configuration for the visa portal notification engine."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.AUTH_SECRET: str = os.getenv("AUTH_SECRET", "")
        self.FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.JWT_ALGORITHM: str = "HS256"
        self.COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Visa Portal")

        # Delivery workers
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "50"))
        self.WORKER_MAX_RETRIES: int = int(os.getenv("WORKER_MAX_RETRIES", "3"))
        self.WORKER_POLL_INTERVAL_SECONDS: int = int(
            os.getenv("WORKER_POLL_INTERVAL_SECONDS", "30")
        )
        self.DELIVERY_SEND_TIMEOUT_SECONDS: float = float(
            os.getenv("DELIVERY_SEND_TIMEOUT_SECONDS", "10")
        )
        self.DELIVERY_CLAIM_LEASE_SECONDS: int = int(
            os.getenv("DELIVERY_CLAIM_LEASE_SECONDS", "120")
        )
        self.DELIVERY_MAX_WORKERS: int = int(os.getenv("DELIVERY_MAX_WORKERS", "4"))
        self.DELIVERY_WEBHOOK_TOKEN: str = os.getenv("DELIVERY_WEBHOOK_TOKEN", "")

        # Channel providers
        self.SENDGRID_API_KEY: str = os.getenv("SENDGRID_API_KEY", "")
        self.SENDGRID_SENDER: str = os.getenv("SENDGRID_SENDER", "")
        self.TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
        self.TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
        self.TWILIO_SMS_NUMBER: str = os.getenv("TWILIO_SMS_NUMBER", "")
        self.FIREBASE_CREDENTIALS_PATH: str = os.getenv(
            "FIREBASE_CREDENTIALS_PATH", "firebase-service-account.json"
        )

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if not self.AUTH_SECRET:
            raise ValueError("AUTH_SECRET environment variable is required")
        if self.WORKER_MAX_RETRIES < 1:
            raise ValueError("WORKER_MAX_RETRIES must be at least 1")
        if self.DELIVERY_SEND_TIMEOUT_SECONDS >= self.DELIVERY_CLAIM_LEASE_SECONDS:
            raise ValueError(
                "DELIVERY_SEND_TIMEOUT_SECONDS must be shorter than "
                "DELIVERY_CLAIM_LEASE_SECONDS"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
