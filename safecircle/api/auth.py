"""Auth endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safecircle.core.deps import get_current_user
from safecircle.db.session import get_db
from safecircle.models.user import User
from safecircle.schemas.auth import (
    AuthPayload,
    LoginRequest,
    PasswordUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
)
from safecircle.schemas.common import Envelope
from safecircle.schemas.user import Me
from safecircle.services import auth_service
from safecircle.services.user_service import serialize_me, serialize_profile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Envelope[AuthPayload], status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
):
    """Register a new user and return a token pair."""
    user, tokens = auth_service.register(db, data)
    return Envelope(
        message="User registered successfully",
        data=AuthPayload(**tokens.model_dump(), user=serialize_profile(user)),
    )


@router.post("/login", response_model=Envelope[AuthPayload])
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """Login. Five consecutive failures lock the account for a while."""
    user, tokens = auth_service.login(db, data.email, data.password, remember_me=data.remember_me)
    return Envelope(
        message="Login successful",
        data=AuthPayload(**tokens.model_dump(), user=serialize_profile(user)),
    )


@router.post("/refresh", response_model=Envelope[TokenPair])
def refresh(
    data: RefreshRequest,
    db: Session = Depends(get_db),
):
    return Envelope(data=auth_service.refresh(db, data.refresh_token))


@router.post("/logout", response_model=Envelope[None])
def logout(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    auth_service.logout(db, current_user)
    return Envelope(message="Logged out successfully")


@router.get("/me", response_model=Envelope[Me])
def me(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get current authenticated user."""
    return Envelope(data=serialize_me(db, current_user))


@router.put("/password", response_model=Envelope[TokenPair])
def update_password(
    data: PasswordUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    tokens = auth_service.change_password(db, current_user, data.current_password, data.new_password)
    return Envelope(message="Password updated successfully", data=tokens)
