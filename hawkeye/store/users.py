"""User lookups and notification bookkeeping."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from ..constants import ALERT_FREQUENCIES
from ..errors import UserNotFoundError
from ..models.user import User

PREFERENCE_FIELDS = frozenset({
    "email_notifications",
    "slack_notifications",
    "discord_notifications",
    "telegram_notifications",
    "telegram_chat_id",
    "alert_frequency",
    "slack_webhook_url",
    "discord_webhook_url",
})


class UserStore:
    def __init__(self, db_session_factory):
        self._db_session_factory = db_session_factory

    async def add(self, email: str, **fields) -> User:
        async with self._db_session_factory() as session:
            user = User(email=email, **fields)
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    async def get(self, user_id: int) -> Optional[User]:
        async with self._db_session_factory() as session:
            return await session.get(User, user_id)

    async def require(self, user_id: int) -> User:
        user = await self.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def list_active(self) -> list[User]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(User).where(User.is_active.is_(True)).order_by(User.id)
            )
            return list(result.scalars().all())

    async def set_last_alert_sent(self, user_id: int, when: datetime) -> None:
        async with self._db_session_factory() as session:
            await session.execute(
                update(User).where(User.id == user_id).values(last_alert_sent=when)
            )
            await session.commit()

    async def update_preferences(self, user_id: int, **fields) -> None:
        """Update notification preferences (channel toggles, frequency, webhook overrides)."""
        unknown = set(fields) - PREFERENCE_FIELDS
        if unknown:
            raise ValueError(f"Not a notification preference: {', '.join(sorted(unknown))}")
        frequency = fields.get("alert_frequency")
        if frequency is not None and frequency not in ALERT_FREQUENCIES:
            raise ValueError(f"Unknown alert frequency: {frequency}")
        if not fields:
            await self.require(user_id)
            return
        async with self._db_session_factory() as session:
            result = await session.execute(
                update(User).where(User.id == user_id).values(**fields)
            )
            await session.commit()
        if result.rowcount == 0:
            raise UserNotFoundError(f"User {user_id} not found")
