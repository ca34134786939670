"""Outbox model for delayed and retried deliveries."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import OutboxStatus
from db.base import BaseModel


class OutboundMessage(BaseModel):
    """Rendered notification waiting for (re)delivery.

    The payload is rendered at enqueue time, so later template edits do
    not change messages already in flight.

    Attributes:
        channel: Action type the payload is delivered through
        payload: Serialized Notification (see notifications.channels)
        not_before: Earliest delivery time (naive UTC)
        attempts_made: Delivery attempts made from the outbox so far
        attempts_remaining: Attempts left before the row is marked dead
        status: pending, delivered or dead
        last_error: Error of the most recent failed attempt
    """

    __tablename__ = "outbound_messages"

    trigger_action_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("trigger_actions.id", ondelete="SET NULL"),
        nullable=True,
    )
    trigger_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("trigger_catalog.id", ondelete="SET NULL"),
        nullable=True,
    )
    action_template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("action_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    channel: Mapped[str] = mapped_column(nullable=False)
    recipient: Mapped[Optional[str]] = mapped_column(nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    context_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    not_before: Mapped[datetime] = mapped_column(nullable=False, index=True)
    attempts_made: Mapped[int] = mapped_column(default=0)
    attempts_remaining: Mapped[int] = mapped_column(default=1)
    status: Mapped[str] = mapped_column(default=OutboxStatus.PENDING.value, index=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger_source: Mapped[str] = mapped_column(default="api")
    triggered_by: Mapped[str] = mapped_column(default="system")
