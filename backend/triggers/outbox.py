"""Delivery outbox for delayed and retried trigger actions.

The dispatcher decides what to send; the outbox makes sure it goes
out. Rows hold the fully rendered notification, the earliest delivery
time and the number of attempts left. ``drain`` (run every minute by
Celery beat) delivers due rows, logs each attempt and reschedules
failures with backoff until attempts run out.
"""

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from core.constants import ActivityStatus, OutboxStatus, TriggerSource
from core.utils import utc_now_naive
from db.models.outbound_message import OutboundMessage
from db.models.trigger import TriggerAction
from notifications.backoff import BackoffPolicy
from notifications.channels import Notification
from services.activity_service import ActivityService

logger = structlog.get_logger(__name__)


def default_backoff() -> BackoffPolicy:
    settings = get_settings()
    return BackoffPolicy.exponential(
        base_delay=settings.OUTBOX_BASE_DELAY_SECONDS,
        max_delay=settings.OUTBOX_MAX_DELAY_SECONDS,
    )


class DeliveryOutbox:
    """Durable queue of rendered notifications."""

    def __init__(self, db: AsyncSession, manager=None, backoff: Optional[BackoffPolicy] = None):
        self.db = db
        self._manager = manager
        self.backoff = backoff or default_backoff()

    @property
    def manager(self):
        if self._manager is None:
            from notifications.manager import get_notification_manager

            self._manager = get_notification_manager()
        return self._manager

    async def enqueue(
        self,
        notification: Notification,
        *,
        action: Optional[TriggerAction] = None,
        context: Optional[Mapping[str, Any]] = None,
        not_before: Optional[datetime] = None,
        attempts_remaining: int = 1,
        attempts_made: int = 0,
        last_error: Optional[str] = None,
        trigger_source: str = TriggerSource.API.value,
        triggered_by: str = "system",
    ) -> OutboundMessage:
        message = OutboundMessage(
            trigger_action_id=action.id if action else None,
            trigger_id=action.trigger_id if action else None,
            action_template_id=action.action_template_id if action else None,
            channel=notification.channel.value,
            recipient=notification.recipient,
            payload=notification.to_dict(),
            context_data=dict(context) if context else None,
            not_before=not_before or utc_now_naive(),
            attempts_made=attempts_made,
            attempts_remaining=attempts_remaining,
            status=OutboxStatus.PENDING.value,
            last_error=last_error,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
        )
        self.db.add(message)
        await self.db.flush()
        logger.info(
            "outbox_enqueued",
            message_id=message.id,
            channel=message.channel,
            not_before=message.not_before.isoformat(),
            attempts_remaining=attempts_remaining,
        )
        return message

    async def enqueue_retry(
        self,
        notification: Notification,
        *,
        action: TriggerAction,
        context: Optional[Mapping[str, Any]],
        error: Optional[str],
        attempts_remaining: int,
        trigger_source: str,
        triggered_by: str,
    ) -> OutboundMessage:
        """Queue redelivery after a failed first attempt."""
        return await self.enqueue(
            notification,
            action=action,
            context=context,
            not_before=utc_now_naive() + timedelta(seconds=self.backoff.compute_delay(1)),
            attempts_remaining=attempts_remaining,
            attempts_made=1,
            last_error=error,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
        )

    async def due_messages(self, now: datetime, limit: int) -> list[OutboundMessage]:
        result = await self.db.execute(
            select(OutboundMessage)
            .where(
                OutboundMessage.status == OutboxStatus.PENDING.value,
                OutboundMessage.not_before <= now,
                OutboundMessage.is_deleted == False,  # noqa: E712
            )
            .order_by(OutboundMessage.not_before.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def deliver(self, message: OutboundMessage, now: Optional[datetime] = None) -> str:
        """Attempt one delivery. Returns the row's resulting status."""
        now = now or utc_now_naive()
        notification = Notification.from_dict(message.payload)
        retry_count = message.attempts_made

        try:
            result = await self.manager.send(notification, db=self.db)
            success, status_message, error = result.success, result.status_message, result.error
            response_data = result.response_data
        except Exception as exc:
            logger.error("outbox_delivery_error", message_id=message.id, error=str(exc), exc_info=True)
            success, status_message, error, response_data = False, str(exc), str(exc), None

        message.attempts_made += 1
        message.attempts_remaining = max(message.attempts_remaining - 1, 0)

        await ActivityService(self.db).record(
            action_type=message.channel,
            status=ActivityStatus.SENT if success else ActivityStatus.FAILED,
            status_message=status_message,
            recipient=message.recipient,
            subject=notification.title or notification.message[:120] or None,
            trigger_action_id=message.trigger_action_id,
            trigger_id=message.trigger_id,
            action_template_id=message.action_template_id,
            trigger_source=message.trigger_source,
            triggered_by=message.triggered_by,
            context_data=message.context_data,
            response_data=response_data,
            retry_count=retry_count,
            executed_at=now,
        )

        if success:
            message.status = OutboxStatus.DELIVERED.value
            message.last_error = None
        elif message.attempts_remaining > 0:
            delay = self.backoff.compute_delay(message.attempts_made)
            message.not_before = now + timedelta(seconds=delay)
            message.last_error = error
        else:
            message.status = OutboxStatus.DEAD.value
            message.last_error = error
            logger.warning("outbox_message_dead", message_id=message.id, error=error)

        await self.db.flush()
        return message.status

    async def drain(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> dict:
        """Deliver every due message, one row's failure never stopping the rest."""
        now = now or utc_now_naive()
        limit = limit or get_settings().OUTBOX_BATCH_SIZE
        counts = {"processed": 0, "delivered": 0, "retrying": 0, "dead": 0, "errors": 0}

        for message in await self.due_messages(now, limit):
            counts["processed"] += 1
            message_id = message.id
            try:
                async with self.db.begin_nested():
                    status = await self.deliver(message, now=now)
            except Exception as exc:
                counts["errors"] += 1
                logger.error("outbox_drain_item_failed", message_id=message_id, error=str(exc), exc_info=True)
                continue

            if status == OutboxStatus.DELIVERED.value:
                counts["delivered"] += 1
            elif status == OutboxStatus.DEAD.value:
                counts["dead"] += 1
            else:
                counts["retrying"] += 1

        if counts["processed"]:
            logger.info("outbox_drained", **counts)
        return counts

    async def list_messages(self, status: Optional[str] = None, limit: int = 100) -> list[OutboundMessage]:
        query = select(OutboundMessage).where(OutboundMessage.is_deleted == False)  # noqa: E712
        if status:
            query = query.where(OutboundMessage.status == status)
        result = await self.db.execute(query.order_by(OutboundMessage.not_before.desc()).limit(limit))
        return list(result.scalars().all())
