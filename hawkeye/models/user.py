"""User model with embedded notification preferences."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    telegram_chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    # Notification preferences
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    slack_notifications: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    discord_notifications: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    telegram_notifications: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    alert_frequency: Mapped[str] = mapped_column(
        String(20), default="immediate", nullable=False
    )  # immediate, hourly, daily
    last_alert_sent: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    slack_webhook_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    discord_webhook_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.email

    @property
    def email_domain(self) -> Optional[str]:
        if "@" not in self.email:
            return None
        return self.email.split("@", 1)[1].lower() or None
