"""Signature expiration sweep.

Signature requests live for seven days. Every few hours the sweep walks
the pending requests and:

- expires the ones past their deadline and fires ``signature_expired``
- sends a 3-day reminder once a request is at least four days old
- sends a 1-day reminder once a request is at least six days old

Reminders go straight through the email channel using the reminder
templates (looked up by name), not through the trigger catalog. Each
reminder is sent at most once per request: the ``reminder_*_sent_at``
columns are authoritative, and rows written before those columns existed
are recognised by the marker text in ``notes``.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from core.constants import (
    REMINDER_1_DAY_TEMPLATE,
    REMINDER_3_DAY_TEMPLATE,
    SIGNATURE_EXPIRED_TRIGGER,
    ActionType,
    ActivityStatus,
    SignatureStatus,
    TriggerSource,
)
from core.logging_config import log_context
from core.utils import append_note, days_since, days_until, utc_now_naive
from db.models.merchant import MerchantApplication, Prospect
from db.models.signature import SignatureCapture
from notifications.manager import NotificationManager, get_notification_manager
from notifications.rendering import compose_notification
from services.action_template_service import ActionTemplateService
from services.activity_service import ActivityService

logger = structlog.get_logger(__name__)

DEFAULT_COMPANY_NAME = "Merchant Application"
DEFAULT_AGENT_NAME = "Agent"


@dataclass(frozen=True)
class ReminderKind:
    """One of the two reminder stages."""

    days_left: int
    min_age_days: int
    template_name: str
    default_subject: str
    flag: str
    marker: str


THREE_DAY = ReminderKind(
    days_left=3,
    min_age_days=4,
    template_name=REMINDER_3_DAY_TEMPLATE,
    default_subject="Reminder: Signature Required",
    flag="reminder_3_day_sent_at",
    marker="3-day reminder sent",
)
ONE_DAY = ReminderKind(
    days_left=1,
    min_age_days=6,
    template_name=REMINDER_1_DAY_TEMPLATE,
    default_subject="URGENT: Signature Required Today",
    flag="reminder_1_day_sent_at",
    marker="1-day reminder sent",
)


@dataclass
class SweepResult:
    """Counts from one sweep run."""

    processed: int = 0
    reminders_3_day: int = 0
    reminders_1_day: int = 0
    expired: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SweepStatus:
    """Last sweep run in this process, for the status endpoint."""

    def __init__(self):
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[SweepResult] = None
        self.last_error: Optional[str] = None

    def record(self, result: Optional[SweepResult], error: Optional[str] = None) -> None:
        self.last_run_at = utc_now_naive()
        self.last_result = result
        self.last_error = error

    def to_dict(self) -> dict:
        return {
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_error": self.last_error,
            "interval_hours": get_settings().SIGNATURE_SWEEP_INTERVAL_HOURS,
        }


sweep_status = SweepStatus()


def reminder_due(signature: SignatureCapture, now: datetime) -> Optional[ReminderKind]:
    """Which reminder, if any, the signature qualifies for right now.

    Does not look at whether the reminder was already sent.
    """
    left = days_until(signature.timestamp_expires, now)
    age = days_since(signature.timestamp_requested, now)
    if left == THREE_DAY.days_left and age >= THREE_DAY.min_age_days:
        return THREE_DAY
    if left == ONE_DAY.days_left and age >= ONE_DAY.min_age_days:
        return ONE_DAY
    return None


def already_sent(signature: SignatureCapture, kind: ReminderKind) -> bool:
    if getattr(signature, kind.flag) is not None:
        return True
    return bool(signature.notes and kind.marker in signature.notes)


class SignatureExpirationService:
    """Runs the reminder/expiry sweep over pending signature requests."""

    def __init__(
        self,
        db: AsyncSession,
        manager: Optional[NotificationManager] = None,
        dispatcher=None,
    ):
        self.db = db
        self.manager = manager or get_notification_manager()
        if dispatcher is None:
            from triggers.dispatcher import TriggerDispatcher

            dispatcher = TriggerDispatcher(db, manager=self.manager)
        self.dispatcher = dispatcher
        self.templates = ActionTemplateService(db)
        self.activity = ActivityService(db)

    async def pending_signatures(self) -> list[SignatureCapture]:
        result = await self.db.execute(
            select(SignatureCapture)
            .where(
                SignatureCapture.status == SignatureStatus.REQUESTED.value,
                SignatureCapture.is_deleted == False,  # noqa: E712
            )
            .order_by(SignatureCapture.timestamp_expires.asc())
        )
        return list(result.scalars().all())

    async def process_expiring_signatures(self, now: Optional[datetime] = None) -> SweepResult:
        """Run one sweep. Never raises for a single bad row."""
        now = now or utc_now_naive()
        result = SweepResult()
        signatures = await self.pending_signatures()
        logger.info("signature_sweep_started", pending=len(signatures))

        for signature in signatures:
            if signature.timestamp_expires is None or signature.timestamp_requested is None:
                continue
            result.processed += 1
            signature_id = signature.id
            try:
                with log_context(signature_id=signature_id):
                    async with self.db.begin_nested():
                        await self._process_one(signature, now, result)
            except Exception as exc:
                result.errors += 1
                logger.error(
                    "signature_sweep_item_failed",
                    signature_id=signature_id,
                    error=str(exc),
                    exc_info=True,
                )

        logger.info("signature_sweep_completed", **result.to_dict())
        return result

    async def _process_one(self, signature: SignatureCapture, now: datetime, result: SweepResult) -> None:
        if now >= signature.timestamp_expires:
            await self.expire(signature, now)
            result.expired += 1
            return

        kind = reminder_due(signature, now)
        if kind is None or already_sent(signature, kind):
            return
        if await self.send_reminder(signature, kind, now):
            if kind is THREE_DAY:
                result.reminders_3_day += 1
            else:
                result.reminders_1_day += 1

    async def expire(self, signature: SignatureCapture, now: datetime) -> None:
        """Mark the request expired and fire the expiry trigger."""
        signature.status = SignatureStatus.EXPIRED.value
        signature.expired_at = now
        signature.notes = append_note(signature.notes, f"Expired on {now.isoformat()}")
        await self.db.flush()

        company_name, agent_name = await self.context_names(signature)
        requested = signature.timestamp_requested
        await self.dispatcher.fire(
            SIGNATURE_EXPIRED_TRIGGER,
            {
                "ownerName": signature.signer_name or "Owner",
                "ownerEmail": signature.signer_email,
                "recipientEmail": signature.signer_email,
                "companyName": company_name,
                "roleKey": signature.role_key,
                "originalRequestDate": requested.strftime("%Y-%m-%d") if requested else "Unknown",
                "agentName": agent_name,
            },
            trigger_source=TriggerSource.SIGNATURE_EXPIRATION.value,
            triggered_by="system",
        )
        logger.info("signature_expired", signature_id=signature.id)

    async def send_reminder(self, signature: SignatureCapture, kind: ReminderKind, now: datetime) -> bool:
        """Send one reminder email. Returns True only when it went out."""
        if not signature.signer_email:
            logger.warning("signature_reminder_no_email", signature_id=signature.id)
            return False

        template = await self.templates.get_by_name(kind.template_name)
        if template is None or not template.is_active or template.action_type != ActionType.EMAIL.value:
            logger.warning("signature_reminder_template_missing", template=kind.template_name)
            return False

        company_name, agent_name = await self.context_names(signature)
        base_url = get_settings().PUBLIC_BASE_URL.rstrip("/")
        values = {
            "ownerName": signature.signer_name or "Owner",
            "ownerEmail": signature.signer_email,
            "companyName": company_name,
            "signatureUrl": f"{base_url}/sign/{signature.request_token}",
            "agentName": agent_name,
        }
        config = dict(template.config or {})
        config["subject"] = config.get("subject") or kind.default_subject

        notification = compose_notification(
            ActionType.EMAIL.value,
            config,
            values,
            recipient=signature.signer_email,
            metadata={"signature_id": signature.id, "template": template.name},
        )
        delivery = await self.manager.send(notification, db=self.db)

        await self.activity.record(
            action_type=ActionType.EMAIL.value,
            status=ActivityStatus.SENT if delivery.success else ActivityStatus.FAILED,
            status_message=delivery.status_message,
            recipient=signature.signer_email,
            recipient_name=signature.signer_name,
            subject=notification.title,
            action_template_id=template.id,
            trigger_source=TriggerSource.SIGNATURE_WORKFLOW.value,
            triggered_by="system",
            context_data={
                "signatureId": signature.id,
                "roleKey": signature.role_key,
                "companyName": company_name,
                "agentName": agent_name,
                "daysUntilExpiration": kind.days_left,
            },
            response_data=delivery.response_data,
            executed_at=now,
        )

        if not delivery.success:
            logger.warning(
                "signature_reminder_failed",
                signature_id=signature.id,
                days_left=kind.days_left,
                error=delivery.error,
            )
            return False

        setattr(signature, kind.flag, now)
        signature.notes = append_note(signature.notes, f"{kind.marker} on {now.isoformat()}")
        await self.db.flush()
        logger.info("signature_reminder_sent", signature_id=signature.id, days_left=kind.days_left)
        return True

    async def context_names(self, signature: SignatureCapture) -> tuple[str, str]:
        """(companyName, agentName) from the application, else the prospect."""
        company_name, agent_name = DEFAULT_COMPANY_NAME, DEFAULT_AGENT_NAME
        try:
            owner: Any = None
            if signature.application_id:
                owner = await self.db.get(MerchantApplication, signature.application_id)
            elif signature.prospect_id:
                owner = await self.db.get(Prospect, signature.prospect_id)
            if owner is not None:
                company_name = owner.business_name or company_name
                creator = owner.created_by
                if creator is not None and creator.display_name:
                    agent_name = creator.display_name
        except Exception as exc:
            logger.error("signature_context_lookup_failed", signature_id=signature.id, error=str(exc))
        return company_name, agent_name


async def run_signature_sweep(
    db: AsyncSession,
    manager: Optional[NotificationManager] = None,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Run a sweep and remember its outcome for the status endpoint."""
    try:
        result = await SignatureExpirationService(db, manager=manager).process_expiring_signatures(now)
    except Exception as exc:
        sweep_status.record(None, error=str(exc))
        raise
    sweep_status.record(result)
    return result
