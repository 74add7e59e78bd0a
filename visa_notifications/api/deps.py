"""API dependencies for dependency injection."""

import secrets
from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session

from visa_notifications.config import get_settings
from visa_notifications.db.session import get_session

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """Authenticated caller decoded from the bearer token."""

    id: UUID
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


DBSession = Annotated[Session, Depends(get_db_session)]


def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """Get the authenticated caller from the JWT token."""
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.AUTH_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        subject: str | None = payload.get("sub")
        if subject is None:
            raise credentials_exception
        user_id = UUID(subject)
    except (JWTError, ValueError):
        raise credentials_exception

    return Principal(id=user_id, role=payload.get("role") or "user")


CurrentUser = Annotated[Principal, Depends(get_current_principal)]


def require_admin(current_user: CurrentUser) -> Principal:
    """Allow only callers with the admin role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Required role: admin",
        )
    return current_user


AdminUser = Annotated[Principal, Depends(require_admin)]


def verify_webhook_token(
    x_webhook_token: Annotated[str | None, Header()] = None,
) -> None:
    """Check the shared token sent by delivery providers."""
    expected = get_settings().DELIVERY_WEBHOOK_TOKEN
    if not expected or not x_webhook_token or not secrets.compare_digest(
        x_webhook_token, expected
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token",
        )
