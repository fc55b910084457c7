"""User directory: account creation, credential checks and presence write-through."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound, Unauthenticated
from app.core.security import get_password_hash, verify_password
from app.models import PresenceStatus, Theme, User, utcnow


def avatar_glyph(username: str) -> str:
    return username[:2].upper()


class UserDirectory:
    """Repository for :class:`User` rows."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def find_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        return self.db.execute(stmt).scalar_one_or_none()

    def create(self, username: str, password: str) -> User:
        username = username.strip()
        if self.find_by_username(username) is not None:
            raise Conflict("Username already exists")

        user = User(
            username=username,
            hashed_password=get_password_hash(password),
            avatar=avatar_glyph(username),
            presence_status=PresenceStatus.OFFLINE,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Username already exists") from exc
        return user

    def authenticate(self, username: str, password: str) -> User:
        user = self.find_by_username(username.strip())
        if user is None or not verify_password(password, user.hashed_password):
            raise Unauthenticated("Invalid credentials")
        return user

    def list_except(self, user_id: int) -> list[User]:
        stmt = select(User).where(User.id != user_id).order_by(User.username.asc())
        return list(self.db.execute(stmt).scalars())

    def update_settings(
        self,
        user: User,
        *,
        theme: Theme | None = None,
        notifications_enabled: bool | None = None,
    ) -> User:
        if theme is not None:
            user.theme = theme
        if notifications_enabled is not None:
            user.notifications_enabled = notifications_enabled
        self.db.add(user)
        self.db.flush()
        return user

    def set_presence(
        self,
        user_id: int,
        status: PresenceStatus,
        *,
        last_seen_at: datetime | None = None,
    ) -> None:
        """Write a presence transition straight to the row."""

        values: dict[str, object] = {"presence_status": status}
        if status == PresenceStatus.OFFLINE:
            values["last_seen_at"] = last_seen_at or utcnow()
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        self.db.execute(stmt)
