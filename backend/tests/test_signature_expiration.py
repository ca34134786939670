"""Tests for the signature expiration sweep."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from core.constants import REMINDER_1_DAY_TEMPLATE, REMINDER_3_DAY_TEMPLATE
from core.utils import utc_now_naive
from db.models.action_activity import ActionActivity
from db.models.merchant import MerchantApplication, Prospect
from services.signature_expiration import (
    ONE_DAY,
    THREE_DAY,
    SignatureExpirationService,
    reminder_due,
    run_signature_sweep,
    sweep_status,
)

REMINDER_CONFIG = {
    "subject": "Reminder for {{companyName}}",
    "htmlContent": '<p>Dear {{ownerName}}, <a href="{{signatureUrl}}">sign</a></p>',
    "textContent": "Dear {{ownerName}}, sign at {{signatureUrl}} ({{agentName}})",
}


class RecordingDispatcher:
    """Stands in for TriggerDispatcher; raises for chosen signer emails."""

    def __init__(self, explode_for=()):
        self.fired = []
        self.explode_for = set(explode_for)

    async def fire(self, trigger_key, context, **kwargs):
        if context.get("ownerEmail") in self.explode_for:
            raise RuntimeError("dispatcher down")
        self.fired.append((trigger_key, context, kwargs))


@pytest.fixture
def now():
    return utc_now_naive()


@pytest_asyncio.fixture
async def reminder_templates(make_template):
    return (
        await make_template(name=REMINDER_3_DAY_TEMPLATE, config=REMINDER_CONFIG),
        await make_template(name=REMINDER_1_DAY_TEMPLATE, config=REMINDER_CONFIG),
    )


@pytest.fixture
def sweeper(db_session, notification_manager):
    def _build(dispatcher=None):
        return SignatureExpirationService(db_session, manager=notification_manager, dispatcher=dispatcher)
    return _build


@pytest.mark.unit
class TestReminderDue:

    @pytest.mark.parametrize(
        "age_days, expected",
        [(3, None), (4, THREE_DAY), (4.5, THREE_DAY), (5, None), (6, ONE_DAY), (6.9, ONE_DAY)],
    )
    def test_windows(self, age_days, expected, now):
        from db.models.signature import SignatureCapture

        requested = now - timedelta(days=age_days)
        signature = SignatureCapture(timestamp_requested=requested, timestamp_expires=requested + timedelta(days=7))
        assert reminder_due(signature, now) is expected


@pytest.mark.integration
class TestReminders:

    @pytest.mark.asyncio
    async def test_three_day_reminder_sent_once(self, db_session, sweeper, email_channel, reminder_templates, make_signature, now):
        signature = await make_signature(age_days=4, now=now, request_token="tok-123")

        first = await sweeper().process_expiring_signatures(now)
        second = await sweeper().process_expiring_signatures(now + timedelta(hours=1))

        assert first.reminders_3_day == 1
        assert second.reminders_3_day == 0
        assert len(email_channel.sent) == 1
        sent = email_channel.sent[0]
        assert sent.recipient == "olivia@example.com"
        assert sent.title == "Reminder for Merchant Application"
        assert "https://backoffice.test/sign/tok-123" in sent.message
        assert "(Agent)" in sent.message
        assert signature.reminder_3_day_sent_at == now
        assert "3-day reminder sent on" in signature.notes
        assert signature.status == "requested"

        activity = (await db_session.execute(select(ActionActivity))).scalar_one()
        assert activity.trigger_source == "signature_workflow"
        assert activity.action_template_id == reminder_templates[0].id
        assert activity.context_data["daysUntilExpiration"] == 3

    @pytest.mark.asyncio
    async def test_legacy_note_marker_honoured(self, db_session, sweeper, email_channel, reminder_templates, make_signature, now):
        await make_signature(age_days=4, now=now, notes="3-day reminder sent on 2024-01-01T00:00:00")

        result = await sweeper().process_expiring_signatures(now)

        assert result.reminders_3_day == 0
        assert email_channel.sent == []

    @pytest.mark.asyncio
    async def test_one_day_reminder_uses_default_subject(self, db_session, sweeper, email_channel, reminder_templates, make_signature, now):
        one_day = reminder_templates[1]
        one_day.config = {k: v for k, v in REMINDER_CONFIG.items() if k != "subject"}
        await db_session.flush()
        signature = await make_signature(age_days=6, now=now)

        result = await sweeper().process_expiring_signatures(now)

        assert result.reminders_1_day == 1
        assert email_channel.sent[0].title == "URGENT: Signature Required Today"
        assert signature.reminder_1_day_sent_at == now

    @pytest.mark.asyncio
    async def test_missing_template_sends_nothing(self, db_session, sweeper, email_channel, make_signature, now):
        signature = await make_signature(age_days=4, now=now)

        result = await sweeper().process_expiring_signatures(now)

        assert result.reminders_3_day == 0
        assert result.errors == 0
        assert signature.reminder_3_day_sent_at is None

    @pytest.mark.asyncio
    async def test_failed_send_sets_no_flag(self, db_session, sweeper, email_channel, reminder_templates, make_signature, now):
        email_channel.fail_for.add("olivia@example.com")
        signature = await make_signature(age_days=4, now=now)

        result = await sweeper().process_expiring_signatures(now)

        assert result.reminders_3_day == 0
        assert signature.reminder_3_day_sent_at is None
        assert signature.notes is None
        activity = (await db_session.execute(select(ActionActivity))).scalar_one()
        assert activity.status == "failed"

        email_channel.fail_for.clear()
        retried = await sweeper().process_expiring_signatures(now + timedelta(minutes=30))
        assert retried.reminders_3_day == 1

    @pytest.mark.asyncio
    async def test_agent_and_company_from_application(
        self, db_session, sweeper, email_channel, reminder_templates, make_signature, test_user, now
    ):
        application = MerchantApplication(business_name="Acme Bakery", created_by=test_user)
        db_session.add(application)
        await db_session.flush()
        await make_signature(age_days=4, now=now, application_id=application.id)

        await sweeper().process_expiring_signatures(now)

        assert email_channel.sent[0].title == "Reminder for Acme Bakery"
        assert "(Alex Agent)" in email_channel.sent[0].message


@pytest.mark.integration
class TestExpiry:

    @pytest.mark.asyncio
    async def test_expired_signature_fires_trigger(
        self, db_session, sweeper, email_channel, make_signature, make_trigger, make_template, link_action, now
    ):
        prospect = Prospect(business_name="Corner Cafe", created_by=None)
        db_session.add(prospect)
        await db_session.flush()
        trigger = await make_trigger("signature_expired")
        template = await make_template(config={
            "subject": "Expired: {{companyName}}",
            "htmlContent": "<p>Requested {{originalRequestDate}}</p>",
        })
        await link_action(trigger, template)
        signature = await make_signature(age_days=8, now=now, prospect_id=prospect.id)

        result = await sweeper().process_expiring_signatures(now)

        assert result.expired == 1
        assert signature.status == "expired"
        assert signature.expired_at == now
        assert signature.notes.startswith("Expired on ")
        sent = email_channel.sent[0]
        assert sent.recipient == "olivia@example.com"
        assert sent.title == "Expired: Corner Cafe"
        activity = (await db_session.execute(select(ActionActivity))).scalar_one()
        assert activity.trigger_source == "signature_expiration_service"
        assert activity.context_data["companyName"] == "Corner Cafe"
        assert activity.context_data["roleKey"] == "owner"

    @pytest.mark.asyncio
    async def test_expired_context(self, db_session, sweeper, make_signature, now):
        dispatcher = RecordingDispatcher()
        signature = await make_signature(age_days=7, now=now, signer_name=None)

        await sweeper(dispatcher).process_expiring_signatures(now)

        (trigger_key, context, kwargs), = dispatcher.fired
        assert trigger_key == "signature_expired"
        assert context["ownerName"] == "Owner"
        assert context["companyName"] == "Merchant Application"
        assert context["originalRequestDate"] == signature.timestamp_requested.strftime("%Y-%m-%d")
        assert kwargs["trigger_source"] == "signature_expiration_service"

    @pytest.mark.asyncio
    async def test_expired_rows_are_not_revisited(self, db_session, sweeper, make_signature, now):
        dispatcher = RecordingDispatcher()
        await make_signature(age_days=9, now=now)

        await sweeper(dispatcher).process_expiring_signatures(now)
        again = await sweeper(dispatcher).process_expiring_signatures(now)

        assert again.processed == 0
        assert len(dispatcher.fired) == 1


@pytest.mark.integration
class TestSweepIsolation:

    @pytest.mark.asyncio
    async def test_one_bad_row_does_not_stop_the_sweep(self, db_session, sweeper, make_signature, now):
        dispatcher = RecordingDispatcher(explode_for={"bad@example.com"})
        bad = await make_signature(age_days=10, now=now, signer_email="bad@example.com")
        good = await make_signature(age_days=8, now=now, signer_email="good@example.com")

        result = await sweeper(dispatcher).process_expiring_signatures(now)

        assert result.processed == 2
        assert result.errors == 1
        assert result.expired == 1
        await db_session.refresh(bad)
        assert bad.status == "requested"
        assert good.status == "expired"

    @pytest.mark.asyncio
    async def test_rows_missing_timestamps_are_skipped(self, db_session, sweeper, make_signature, now):
        signature = await make_signature(age_days=9, now=now)
        signature.timestamp_expires = None
        await db_session.flush()

        result = await sweeper(RecordingDispatcher()).process_expiring_signatures(now)

        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_run_signature_sweep_records_status(self, db_session, notification_manager, make_signature, now):
        await make_signature(age_days=2, now=now)

        result = await run_signature_sweep(db_session, manager=notification_manager, now=now)

        assert result.processed == 1
        status = sweep_status.to_dict()
        assert status["last_result"] == result.to_dict()
        assert status["last_error"] is None
