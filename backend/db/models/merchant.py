"""Prospect and merchant application models.

Only the columns the notification core reads are mapped here: the
business name and the agent who created the record.
"""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Prospect(BaseModel):
    """Merchant prospect being onboarded."""

    __tablename__ = "prospects"

    business_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    email: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    status: Mapped[str] = mapped_column(default="new")
    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by: Mapped[Optional["User"]] = relationship("User", lazy="selectin")


class MerchantApplication(BaseModel):
    """Submitted merchant application."""

    __tablename__ = "merchant_applications"

    prospect_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("prospects.id", ondelete="SET NULL"),
        nullable=True,
    )
    business_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(default="draft")
    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by: Mapped[Optional["User"]] = relationship("User", lazy="selectin")
