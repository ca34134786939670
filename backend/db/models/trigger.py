"""Trigger catalog and trigger action models.

A catalog entry is a named business event ("signature_expired",
"prospect_created", ...). Trigger actions link an entry to the action
templates that run when it fires, in sequence order.
"""

from typing import Optional

from sqlalchemy import JSON, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class TriggerCatalogEntry(BaseModel):
    """Named event that code can fire by its stable ``trigger_key``.

    Attributes:
        trigger_key: Stable identifier, write-once
        context_schema: Optional description of the context keys callers pass,
            e.g. {"ownerName": "Signer display name"}
    """

    __tablename__ = "trigger_catalog"

    trigger_key: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    context_schema: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)


class TriggerAction(BaseModel):
    """Link between a catalog entry and an action template.

    Attributes:
        sequence_order: Sort key within the trigger; gaps and duplicates allowed
        conditions: Optional {context_key: expected | [allowed, ...]} gate
        requires_email_preference: Skip unless the user opted into email
        requires_sms_preference: Skip unless the user opted into SMS
        delay_seconds: Deliver through the outbox no earlier than this
        retry_on_failure / max_retries: Outbox redelivery after a failed send
    """

    __tablename__ = "trigger_actions"

    trigger_id: Mapped[str] = mapped_column(
        ForeignKey("trigger_catalog.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action_template_id: Mapped[str] = mapped_column(
        ForeignKey("action_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence_order: Mapped[int] = mapped_column(default=1)
    conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    requires_email_preference: Mapped[bool] = mapped_column(default=False)
    requires_sms_preference: Mapped[bool] = mapped_column(default=False)
    delay_seconds: Mapped[int] = mapped_column(default=0)
    retry_on_failure: Mapped[bool] = mapped_column(default=True)
    max_retries: Mapped[int] = mapped_column(default=3)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    trigger: Mapped["TriggerCatalogEntry"] = relationship(
        "TriggerCatalogEntry", lazy="selectin"
    )
    template: Mapped["ActionTemplate"] = relationship(
        "ActionTemplate", lazy="selectin"
    )
