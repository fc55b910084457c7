"""Schemas related to user profiles and settings."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import User
from app.models.enums import PresenceStatus, Theme


class UserSettings(BaseModel):
    theme: Theme = Theme.LIGHT
    notifications_enabled: bool = True


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    avatar: str = ""
    status: PresenceStatus = PresenceStatus.OFFLINE
    last_seen_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(
            id=user.id,
            username=user.username,
            avatar=user.avatar,
            status=user.presence_status,
            last_seen_at=user.last_seen_at,
        )


class UserRead(PublicUser):
    """The authenticated user's own profile, including settings."""

    settings: UserSettings

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            username=user.username,
            avatar=user.avatar,
            status=user.presence_status,
            last_seen_at=user.last_seen_at,
            settings=UserSettings(
                theme=user.theme,
                notifications_enabled=user.notifications_enabled,
            ),
        )


class SettingsUpdate(BaseModel):
    """Partial update of the user's settings; omitted fields are unchanged."""

    theme: Theme | None = Field(default=None, description="New UI theme")
    notifications_enabled: bool | None = Field(
        default=None, description="Toggle message notifications"
    )


class StatusUpdate(BaseModel):
    """Manual presence override while connected."""

    status: PresenceStatus = Field(..., description="Either online or away")
