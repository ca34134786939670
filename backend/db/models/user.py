"""User model."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column

from core.constants import CommunicationPreference
from db.base import BaseModel


class User(BaseModel):
    """Back-office user (agent, admin or merchant contact).

    Attributes:
        email: Login and default email recipient
        username: Fallback display name
        first_name / last_name: Display name parts
        phone: Default SMS recipient
        role: Free-form role label ("admin", "agent", ...)
        communication_preference: email, sms or both; gates
            trigger actions that require a channel opt-in
        is_active: Whether the account may authenticate
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    username: Mapped[Optional[str]] = mapped_column(nullable=True, unique=True)
    password_hash: Mapped[str] = mapped_column(nullable=False, default="")
    first_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(nullable=True)
    role: Mapped[str] = mapped_column(default="agent")
    communication_preference: Mapped[str] = mapped_column(
        default=CommunicationPreference.EMAIL.value
    )
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    @property
    def display_name(self) -> Optional[str]:
        """'First Last' when both are set, else the username."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username
