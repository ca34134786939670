"""Action activity model: one row per attempted or skipped action."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ActivityStatus, TriggerSource
from db.base import BaseModel


class ActionActivity(BaseModel):
    """Delivery log entry.

    Written by the trigger dispatcher, the outbox drain and the signature
    sweep's reminder path (which has no trigger, so the trigger columns
    are nullable).

    Attributes:
        status: sent, failed or skipped
        status_message: Provider message, error text or skip reason
        trigger_source: What fired the action ("api", "signature_workflow", ...)
        triggered_by: User id, or "system"
        context_data: Context the action was rendered with
        response_data: Provider response payload, if any
        retry_count: 0 for the first attempt, n for the n-th redelivery
    """

    __tablename__ = "action_activity"

    trigger_action_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("trigger_actions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    trigger_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("trigger_catalog.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action_template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("action_templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action_type: Mapped[str] = mapped_column(nullable=False, index=True)
    recipient: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    recipient_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        default=ActivityStatus.SENT.value, index=True
    )
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger_source: Mapped[str] = mapped_column(default=TriggerSource.API.value)
    triggered_by: Mapped[str] = mapped_column(default="system")
    context_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    response_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    retry_count: Mapped[int] = mapped_column(default=0)
    executed_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
