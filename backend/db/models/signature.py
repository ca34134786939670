"""Signature capture request model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import SignatureStatus
from db.base import BaseModel


class SignatureCapture(BaseModel):
    """Request for an owner/guarantor signature on an application.

    Timestamps are naive UTC. ``reminder_*_sent_at`` and ``expired_at``
    are the sweep's idempotency flags; ``notes`` keeps a human-readable
    '; '-joined history.
    """

    __tablename__ = "signature_captures"

    application_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("merchant_applications.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    prospect_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("prospects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    role_key: Mapped[str] = mapped_column(nullable=False, default="owner")
    signer_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    signer_email: Mapped[Optional[str]] = mapped_column(nullable=True)
    request_token: Mapped[Optional[str]] = mapped_column(nullable=True, unique=True)
    status: Mapped[str] = mapped_column(
        default=SignatureStatus.REQUESTED.value, index=True
    )
    timestamp_requested: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    timestamp_expires: Mapped[Optional[datetime]] = mapped_column(nullable=True, index=True)
    timestamp_signed: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_3_day_sent_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    reminder_1_day_sent_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
