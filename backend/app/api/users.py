"""User directory and profile endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from murmur.realtime import PresenceRegistry

from app.api.deps import get_current_user
from app.core.errors import ValidationError
from app.database import get_db
from app.models import PresenceStatus, User
from app.schemas import PublicUser, SettingsUpdate, StatusUpdate, UserRead
from app.services import UserDirectory, get_presence_registry

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[PublicUser])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Return every other user, ordered by username."""

    return [PublicUser.from_user(user) for user in UserDirectory(db).list_except(current_user.id)]


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(get_current_user)) -> UserRead:
    return UserRead.from_user(current_user)


@router.patch("/settings", response_model=UserRead)
def update_settings(
    payload: SettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserRead:
    user = UserDirectory(db).update_settings(
        current_user,
        theme=payload.theme,
        notifications_enabled=payload.notifications_enabled,
    )
    db.commit()
    db.refresh(user)
    return UserRead.from_user(user)


@router.patch("/status", response_model=PublicUser)
async def update_status(
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    presence: PresenceRegistry = Depends(get_presence_registry),
) -> PublicUser:
    """Switch between online and away; offline follows from closing every socket."""

    if payload.status == PresenceStatus.OFFLINE:
        raise ValidationError("Status must be online or away")

    if not await presence.set_status(current_user.id, payload.status):
        # No live socket to broadcast from; still record the preference.
        UserDirectory(db).set_presence(current_user.id, payload.status)
        db.commit()
    return PublicUser.from_user(current_user).model_copy(update={"status": payload.status})
