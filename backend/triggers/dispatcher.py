"""Trigger dispatcher: fire a catalog trigger by key.

Call sites fire triggers speculatively ("prospect_created",
"signature_expired", ...) whether or not anything is configured for
them. An unknown, inactive or deleted key is therefore a silent no-op,
and firing never raises to the caller.

Each active action runs independently, in sequence order:

    preference check -> conditions -> recipient -> render -> deliver | enqueue

and leaves exactly one ActionActivity row (sent, failed or skipped),
except delayed actions, which are logged by the outbox when they go out.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ActionType, ActivityStatus, TriggerSource
from core.logging_config import log_context
from core.utils import utc_now_naive
from db.models.action_template import ActionTemplate
from db.models.trigger import TriggerAction, TriggerCatalogEntry
from db.models.user import User
from notifications.manager import NotificationManager, get_notification_manager
from notifications.rendering import compose_notification
from services.activity_service import ActivityService
from services.preferences import PreferenceLookup
from triggers.outbox import DeliveryOutbox

logger = structlog.get_logger(__name__)


@dataclass
class ActionOutcome:
    """What happened to one trigger action during a firing."""
    trigger_action_id: str
    action_template_id: str
    action_type: str
    status: str  # sent, failed, skipped, queued
    recipient: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


@dataclass
class DispatchReport:
    """Summary of one trigger firing."""
    trigger_key: str
    trigger_id: str
    results: list[ActionOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def sent(self) -> int:
        return self._count(ActivityStatus.SENT.value)

    @property
    def failed(self) -> int:
        return self._count(ActivityStatus.FAILED.value)

    @property
    def skipped(self) -> int:
        return self._count(ActivityStatus.SKIPPED.value)

    @property
    def queued(self) -> int:
        return self._count("queued")

    def to_dict(self) -> dict:
        return {
            "trigger_key": self.trigger_key,
            "trigger_id": self.trigger_id,
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "queued": self.queued,
            "results": [vars(r) for r in self.results],
        }


class ActionSkipped(Exception):
    """Raised inside the per-action pipeline to skip one action."""


def conditions_match(conditions: Any, context: Mapping[str, Any]) -> bool:
    """Check a {key: expected | [allowed, ...]} gate against the context.

    Anything that is not a mapping does not gate.
    """
    if not conditions or not isinstance(conditions, dict):
        return True
    for key, expected in conditions.items():
        actual = context.get(key)
        if isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def resolve_recipient(
    action_type: str,
    config: Mapping[str, Any],
    context: Mapping[str, Any],
    user: Optional[User],
) -> Optional[str]:
    """Pick the delivery address for an action from context, then user."""
    if action_type == ActionType.EMAIL.value:
        return context.get("recipientEmail") or context.get("email") or (user.email if user else None)
    if action_type == ActionType.SMS.value:
        return context.get("recipientPhone") or context.get("phone") or (user.phone if user else None)
    if action_type == ActionType.WEBHOOK.value:
        return context.get("webhookUrl") or config.get("url")
    if action_type == ActionType.NOTIFICATION.value:
        return context.get("userId") or (user.id if user else None)
    if action_type == ActionType.SLACK.value:
        return context.get("slackChannel") or config.get("channel") or "slack"
    if action_type == ActionType.TEAMS.value:
        return "teams"
    return None


def _recipient_name(context: Mapping[str, Any], user: Optional[User]) -> Optional[str]:
    name = context.get("recipientName") or context.get("ownerName")
    if not name and context.get("firstName"):
        name = " ".join(filter(None, [context.get("firstName"), context.get("lastName")]))
    if not name and user is not None:
        name = user.display_name
    return name or None


class TriggerDispatcher:
    """Runs the actions linked to a trigger."""

    def __init__(
        self,
        db: AsyncSession,
        manager: Optional[NotificationManager] = None,
        preferences: Optional[PreferenceLookup] = None,
        outbox: Optional[DeliveryOutbox] = None,
    ):
        self.db = db
        self.manager = manager or get_notification_manager()
        self.preferences = preferences or PreferenceLookup(db)
        self.outbox = outbox or DeliveryOutbox(db, manager=self.manager)
        self.activity = ActivityService(db)

    async def resolve_trigger(self, trigger_key: str) -> Optional[TriggerCatalogEntry]:
        """Active catalog entry for ``trigger_key``, or None."""
        result = await self.db.execute(
            select(TriggerCatalogEntry).where(
                TriggerCatalogEntry.trigger_key == trigger_key,
                TriggerCatalogEntry.is_active == True,  # noqa: E712
                TriggerCatalogEntry.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def load_actions(self, trigger_id: str) -> Sequence[TriggerAction]:
        """Active actions with active templates, in execution order."""
        result = await self.db.execute(
            select(TriggerAction)
            .join(ActionTemplate, TriggerAction.action_template_id == ActionTemplate.id)
            .where(
                TriggerAction.trigger_id == trigger_id,
                TriggerAction.is_active == True,  # noqa: E712
                TriggerAction.is_deleted == False,  # noqa: E712
                ActionTemplate.is_active == True,  # noqa: E712
                ActionTemplate.is_deleted == False,  # noqa: E712
            )
            .order_by(
                TriggerAction.sequence_order.asc(),
                TriggerAction.created_at.asc(),
                TriggerAction.id.asc(),
            )
        )
        return result.scalars().all()

    async def fire(
        self,
        trigger_key: str,
        context: Optional[Mapping[str, Any]] = None,
        *,
        user_id: Optional[str] = None,
        trigger_source: str = TriggerSource.API.value,
        triggered_by: Optional[str] = None,
    ) -> Optional[DispatchReport]:
        """Fire ``trigger_key`` with ``context``.

        Returns None when the trigger is unknown or inactive; otherwise a
        report of every action's outcome.
        """
        trigger = await self.resolve_trigger(trigger_key)
        if trigger is None:
            logger.info("trigger_not_configured", trigger_key=trigger_key)
            return None

        context = dict(context or {})
        context.setdefault("triggerEvent", trigger_key)
        user = await self.preferences.get_user(user_id)
        triggered_by = triggered_by or user_id or "system"

        report = DispatchReport(trigger_key=trigger_key, trigger_id=trigger.id)
        actions = await self.load_actions(trigger.id)
        with log_context(trigger_key=trigger_key, trigger_source=trigger_source):
            logger.info("trigger_fired", actions=len(actions))
            for action in actions:
                outcome = await self._run_action(
                    trigger, action, context, user, trigger_source, triggered_by
                )
                report.results.append(outcome)

        logger.info(
            "trigger_completed",
            trigger_key=trigger_key,
            sent=report.sent,
            failed=report.failed,
            skipped=report.skipped,
            queued=report.queued,
        )
        return report

    async def _run_action(
        self,
        trigger: TriggerCatalogEntry,
        action: TriggerAction,
        context: dict,
        user: Optional[User],
        trigger_source: str,
        triggered_by: str,
    ) -> ActionOutcome:
        template = action.template
        action_id = action.id
        outcome = ActionOutcome(
            trigger_action_id=action_id,
            action_template_id=template.id,
            action_type=template.action_type,
            status=ActivityStatus.FAILED.value,
        )
        log_fields = dict(
            trigger_action_id=action_id,
            trigger_id=trigger.id,
            action_template_id=template.id,
            action_type=template.action_type,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
            context_data=context,
        )

        try:
            # Writes made by one action roll back without touching the others
            async with self.db.begin_nested():
                await self._execute(trigger, action, template, context, user, outcome, log_fields)
            return outcome

        except ActionSkipped as skip:
            outcome.status = ActivityStatus.SKIPPED.value
            outcome.message = str(skip)
            logger.info("trigger_action_skipped", trigger_action_id=action_id, reason=str(skip))
            await self._record_safely(
                status=ActivityStatus.SKIPPED,
                status_message=str(skip),
                recipient=outcome.recipient,
                **log_fields,
            )
            return outcome

        except Exception as exc:
            outcome.status = ActivityStatus.FAILED.value
            outcome.message = str(exc) or type(exc).__name__
            logger.error(
                "trigger_action_failed",
                trigger_action_id=action_id,
                error=outcome.message,
                exc_info=True,
            )
            await self._record_safely(
                status=ActivityStatus.FAILED,
                status_message=outcome.message,
                recipient=outcome.recipient,
                subject=outcome.subject,
                **log_fields,
            )
            return outcome

    async def _execute(
        self,
        trigger: TriggerCatalogEntry,
        action: TriggerAction,
        template: ActionTemplate,
        context: dict,
        user: Optional[User],
        outcome: ActionOutcome,
        log_fields: dict,
    ) -> None:
        """Preference, conditions, recipient, render, then queue or send."""
        allowed, reason = self.preferences.allows(user, action)
        if not allowed:
            raise ActionSkipped(reason)
        if not conditions_match(action.conditions, context):
            raise ActionSkipped("Conditions not met")

        config = template.config or {}
        recipient = resolve_recipient(template.action_type, config, context, user)
        if not recipient:
            raise ActionSkipped(f"No recipient for {template.action_type} action")
        outcome.recipient = recipient

        notification = compose_notification(
            template.action_type,
            config,
            context,
            recipient=recipient,
            user_id=user.id if user else None,
            metadata={"trigger_key": trigger.trigger_key, "template": template.name},
        )
        outcome.subject = notification.title or notification.message[:120] or None
        trigger_source = log_fields["trigger_source"]
        triggered_by = log_fields["triggered_by"]

        if action.delay_seconds and action.delay_seconds > 0:
            retries = action.max_retries if action.retry_on_failure else 0
            await self.outbox.enqueue(
                notification,
                action=action,
                context=context,
                not_before=utc_now_naive() + timedelta(seconds=action.delay_seconds),
                attempts_remaining=1 + max(retries, 0),
                attempts_made=0,
                trigger_source=trigger_source,
                triggered_by=triggered_by,
            )
            outcome.status = "queued"
            outcome.message = f"Delayed {action.delay_seconds}s"
            return

        result = await self.manager.send(notification, db=self.db)
        status = ActivityStatus.SENT if result.success else ActivityStatus.FAILED
        outcome.status = status.value
        outcome.message = result.status_message
        await self.activity.record(
            status=status,
            status_message=result.status_message,
            recipient=recipient,
            recipient_name=_recipient_name(context, user),
            subject=outcome.subject,
            response_data=result.response_data,
            **log_fields,
        )

        if not result.success and action.retry_on_failure and action.max_retries > 0:
            await self.outbox.enqueue_retry(
                notification,
                action=action,
                context=context,
                error=result.error,
                attempts_remaining=action.max_retries,
                trigger_source=trigger_source,
                triggered_by=triggered_by,
            )

    async def _record_safely(self, **fields) -> None:
        """Write an activity row; a logging failure must not stop the firing."""
        try:
            await self.activity.record(**fields)
        except Exception as exc:
            logger.error("activity_record_failed", error=str(exc), exc_info=True)


async def fire_trigger(
    trigger_key: str,
    context: Optional[Mapping[str, Any]] = None,
    *,
    user_id: Optional[str] = None,
    trigger_source: str = TriggerSource.API.value,
    triggered_by: Optional[str] = None,
    db: Optional[AsyncSession] = None,
) -> Optional[DispatchReport]:
    """Fire-and-forget entry point for any code path.

    Uses ``db`` when given (the caller commits), otherwise opens and
    commits its own session. Never raises.
    """
    try:
        if db is not None:
            return await TriggerDispatcher(db).fire(
                trigger_key,
                context,
                user_id=user_id,
                trigger_source=trigger_source,
                triggered_by=triggered_by,
            )

        from db.database import AsyncSessionLocal

        async with AsyncSessionLocal() as session:
            report = await TriggerDispatcher(session).fire(
                trigger_key,
                context,
                user_id=user_id,
                trigger_source=trigger_source,
                triggered_by=triggered_by,
            )
            await session.commit()
            return report
    except Exception as exc:
        logger.error("fire_trigger_failed", trigger_key=trigger_key, error=str(exc), exc_info=True)
        return None
