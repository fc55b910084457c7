"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from murmur.realtime import PresenceRegistry

from app.api.deps import get_current_user
from app.core.security import create_access_token
from app.database import get_db
from app.models import PresenceStatus, User
from app.schemas import AuthResponse, LoginRequest, SignupRequest, UserRead
from app.services import UserDirectory, get_presence_registry

router = APIRouter()

logger = logging.getLogger(__name__)


def _issue(user: User) -> AuthResponse:
    return AuthResponse(
        access_token=create_access_token(user.id, user.username),
        token_type="bearer",
        user=UserRead.from_user(user),
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)) -> AuthResponse:
    """Register a new account and return its identity token."""

    user = UserDirectory(db).create(payload.username, payload.password)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.username)
    return _issue(user)


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> AuthResponse:
    """Verify credentials, mark the user online and return a fresh token."""

    directory = UserDirectory(db)
    user = directory.authenticate(payload.username, payload.password)
    directory.set_presence(user.id, PresenceStatus.ONLINE)
    db.commit()
    db.refresh(user)
    return _issue(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    presence: PresenceRegistry = Depends(get_presence_registry),
) -> None:
    """Mark the caller offline unless one of their sockets is still live."""

    if presence.is_online(current_user.id):
        return None
    UserDirectory(db).set_presence(current_user.id, PresenceStatus.OFFLINE)
    db.commit()
    return None
