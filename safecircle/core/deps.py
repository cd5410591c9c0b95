"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from safecircle.core.errors import AuthenticationError, InactiveAccountError
from safecircle.core.events import EventBus, NullEventBus
from safecircle.core.security import decode_access_token
from safecircle.db.session import get_db
from safecircle.models.user import User

security = HTTPBearer(auto_error=False)


def user_from_access_token(db: Session, token: str | None) -> User:
    """Resolve a bearer token to an active user or raise AuthenticationError."""
    if not token:
        raise AuthenticationError("Not authenticated")
    payload = decode_access_token(token)
    if not payload:
        raise AuthenticationError("Invalid or expired token")
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid or expired token")
    user = db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise InactiveAccountError("User is inactive")
    return user


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Require authenticated user. Raises 401 if not authenticated."""
    return user_from_access_token(db, credentials.credentials if credentials else None)


def get_event_bus(request: Request) -> EventBus:
    """The process-wide connection registry, or a no-op bus before startup."""
    return getattr(request.app.state, "channel", None) or NullEventBus()
