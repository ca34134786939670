"""Tests for channel senders, using httpx.MockTransport for provider APIs."""

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy import select

from core.constants import ActionType
from notifications.channels import (
    EmailChannel,
    InAppChannel,
    Notification,
    SlackChannel,
    SmsChannel,
    TeamsChannel,
    WebhookChannel,
    build_auth_headers,
)
from notifications.email_layout import (
    GRADIENT_AGENT,
    GRADIENT_ALERT,
    GRADIENT_DEFAULT,
    GRADIENT_SECURITY,
    apply_layout,
    header_gradient,
)
from notifications.manager import NotificationManager


class Recorder:
    """MockTransport handler that records requests and replays a canned response."""

    def __init__(self, status_code: int = 200, json_body=None, headers=None):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.json_body = json_body
        self.headers = headers or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(self.status_code, json=self.json_body, headers=self.headers)
        return httpx.Response(self.status_code, text="ok", headers=self.headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _notification(channel: ActionType, **fields) -> Notification:
    return Notification(channel=channel, **fields)


@pytest.mark.unit
class TestEmailChannel:

    @pytest.mark.asyncio
    async def test_sendgrid_payload(self):
        recorder = Recorder(202, headers={"X-Message-Id": "msg-1"})
        channel = EmailChannel(
            {"api_key": "SG.key", "from_address": "noreply@backoffice.test", "from_name": "Back Office"},
            transport=recorder.transport,
        )
        result = await channel.send(_notification(
            ActionType.EMAIL,
            recipient="ana@example.com",
            title="Hello",
            message="Plain",
            html="<p>Html</p>",
            config={"replyTo": "agent@example.com"},
        ))

        assert result.success
        assert result.response_data == {"message_id": "msg-1"}
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer SG.key"
        payload = json.loads(request.content)
        assert payload["personalizations"] == [{"to": [{"email": "ana@example.com"}]}]
        assert payload["from"] == {"email": "noreply@backoffice.test", "name": "Back Office"}
        assert payload["reply_to"] == {"email": "agent@example.com"}
        assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]

    @pytest.mark.asyncio
    async def test_template_sender_overrides_default(self):
        recorder = Recorder(202)
        channel = EmailChannel({"api_key": "k", "from_address": "noreply@x.io"}, transport=recorder.transport)
        await channel.send(_notification(
            ActionType.EMAIL, recipient="a@x.io", title="t", message="m", config={"fromEmail": "team@x.io"},
        ))
        assert json.loads(recorder.requests[0].content)["from"] == {"email": "team@x.io"}

    @pytest.mark.asyncio
    async def test_provider_error_is_a_failed_result(self):
        recorder = Recorder(401, json_body={"errors": [{"message": "bad key"}]})
        channel = EmailChannel({"api_key": "k"}, transport=recorder.transport)
        result = await channel.send(_notification(ActionType.EMAIL, recipient="a@x.io", title="t", message="m"))
        assert not result.success
        assert result.error == "SendGrid HTTP 401"

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        result = await EmailChannel({}).send(_notification(ActionType.EMAIL, recipient="a@x.io"))
        assert not result.success
        assert result.error == "Missing SendGrid api_key"


@pytest.mark.unit
class TestSmsChannel:

    @pytest.mark.asyncio
    async def test_twilio_form_post(self):
        recorder = Recorder(201, json_body={"sid": "SM1", "status": "queued"})
        channel = SmsChannel(
            {"account_sid": "AC1", "auth_token": "tok", "from_number": "+15550000000"},
            transport=recorder.transport,
        )
        result = await channel.send(_notification(ActionType.SMS, recipient="+15551234567", message="Hi"))

        assert result.success
        assert result.response_data == {"sid": "SM1", "status": "queued"}
        request = recorder.requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert parse_qs(request.content.decode()) == {
            "To": ["+15551234567"], "From": ["+15550000000"], "Body": ["Hi"],
        }
        assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"AC1:tok").decode()

    @pytest.mark.asyncio
    async def test_twilio_error_code(self):
        recorder = Recorder(400, json_body={"code": 21211, "message": "Invalid 'To' Phone Number"})
        channel = SmsChannel({"account_sid": "AC1", "auth_token": "tok"}, transport=recorder.transport)
        result = await channel.send(_notification(ActionType.SMS, recipient="123", message="Hi"))
        assert result.error == "[21211] Invalid 'To' Phone Number"


@pytest.mark.unit
class TestWebhookChannel:

    @pytest.mark.parametrize("auth, expected", [
        ({"type": "bearer", "credentials": {"token": "t0k"}}, {"Authorization": "Bearer t0k"}),
        (
            {"type": "basic", "credentials": {"username": "u", "password": "p"}},
            {"Authorization": "Basic " + base64.b64encode(b"u:p").decode()},
        ),
        ({"type": "api_key", "credentials": {"headerName": "X-Token", "apiKey": "abc"}}, {"X-Token": "abc"}),
        ({"type": "api_key", "credentials": {"apiKey": "abc"}}, {"X-API-Key": "abc"}),
        ({"type": "none"}, {}),
        (None, {}),
    ])
    def test_auth_headers(self, auth, expected):
        assert build_auth_headers(auth) == expected

    @pytest.mark.asyncio
    async def test_post_json_body(self):
        recorder = Recorder(200)
        channel = WebhookChannel(transport=recorder.transport)
        result = await channel.send(_notification(
            ActionType.WEBHOOK,
            recipient="https://hooks.test/in",
            config={
                "url": "https://hooks.test/in",
                "method": "POST",
                "headers": {"X-Tenant": "acme"},
                "body": {"lead": "Ana"},
                "authentication": {"type": "bearer", "credentials": {"token": "t"}},
            },
        ))

        assert result.success
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["X-Tenant"] == "acme"
        assert request.headers["Authorization"] == "Bearer t"
        assert json.loads(request.content) == {"lead": "Ana"}

    @pytest.mark.asyncio
    async def test_get_sends_no_body(self):
        recorder = Recorder(200)
        channel = WebhookChannel(transport=recorder.transport)
        await channel.send(_notification(
            ActionType.WEBHOOK,
            config={"url": "https://hooks.test/ping", "method": "GET", "body": {"ignored": True}},
        ))
        assert recorder.requests[0].method == "GET"
        assert recorder.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_non_2xx_fails(self):
        channel = WebhookChannel(transport=Recorder(503).transport)
        result = await channel.send(_notification(ActionType.WEBHOOK, config={"url": "https://hooks.test/x"}))
        assert not result.success
        assert result.error == "HTTP 503"
        assert result.response_data["status"] == 503


@pytest.mark.unit
class TestChatChannels:

    @pytest.mark.asyncio
    async def test_slack_blocks(self):
        recorder = Recorder(200)
        channel = SlackChannel({"webhook_url": "https://hooks.slack.test/T1"}, transport=recorder.transport)
        result = await channel.send(_notification(
            ActionType.SLACK, title="New prospect", message="*Acme* signed up", config={"channel": "#sales"},
        ))

        assert result.success
        payload = json.loads(recorder.requests[0].content)
        assert payload["channel"] == "#sales"
        assert payload["blocks"][0] == {"type": "header", "text": {"type": "plain_text", "text": "New prospect"}}
        assert payload["blocks"][1]["text"]["text"] == "*Acme* signed up"

    @pytest.mark.asyncio
    async def test_slack_without_webhook(self):
        result = await SlackChannel({}).send(_notification(ActionType.SLACK, message="x"))
        assert result.error == "No Slack webhook URL configured"

    @pytest.mark.asyncio
    async def test_teams_message_card(self):
        recorder = Recorder(200)
        channel = TeamsChannel({"webhook_url": "https://teams.test/hook"}, transport=recorder.transport)
        await channel.send(_notification(ActionType.TEAMS, title="Heads up", message="Body"))

        card = json.loads(recorder.requests[0].content)
        assert card["@type"] == "MessageCard"
        assert card["title"] == "Heads up"
        assert card["text"] == "Body"

    @pytest.mark.asyncio
    async def test_teams_http_error(self):
        channel = TeamsChannel({"webhook_url": "https://teams.test/hook"}, transport=Recorder(500).transport)
        result = await channel.send(_notification(ActionType.TEAMS, message="Body"))
        assert not result.success


@pytest.mark.integration
class TestInAppChannel:

    @pytest.mark.asyncio
    async def test_creates_user_alert(self, db_session, test_user):
        from db.models.user_alert import UserAlert

        result = await InAppChannel().send(
            _notification(
                ActionType.NOTIFICATION,
                recipient=test_user.id,
                title="Signature captured",
                message="Olivia signed",
                config={"type": "success", "actionUrl": "/applications/1"},
            ),
            db=db_session,
        )

        assert result.success
        alert = (await db_session.execute(select(UserAlert))).scalar_one()
        assert alert.user_id == test_user.id
        assert alert.type == "success"
        assert alert.action_url == "/applications/1"
        assert alert.is_read is False

    @pytest.mark.asyncio
    async def test_unknown_user_leaves_session_usable(self, foreign_keys, db_session, test_user):
        from db.models.user_alert import UserAlert

        failed = await InAppChannel().send(
            _notification(ActionType.NOTIFICATION, recipient="no-such-user", title="t", message="m"),
            db=db_session,
        )
        assert not failed.success

        sent = await InAppChannel().send(
            _notification(ActionType.NOTIFICATION, recipient=test_user.id, title="t", message="m"),
            db=db_session,
        )
        assert sent.success
        alerts = (await db_session.execute(select(UserAlert))).scalars().all()
        assert [a.user_id for a in alerts] == [test_user.id]

    @pytest.mark.asyncio
    async def test_needs_session(self):
        result = await InAppChannel().send(_notification(ActionType.NOTIFICATION, recipient="u1"))
        assert not result.success


@pytest.mark.unit
class TestManager:

    @pytest.mark.asyncio
    async def test_unregistered_channel_fails(self):
        result = await NotificationManager().send(_notification(ActionType.SMS, recipient="+1"))
        assert not result.success
        assert result.error == "Channel not configured: sms"

    def test_configure_from_settings_registers_all(self):
        from app.config import get_settings

        manager = NotificationManager()
        manager.configure_from_settings(get_settings())
        assert manager.get_status()["channels"] == sorted(t.value for t in ActionType)
        assert manager.get_status()["initialized"] is True


@pytest.mark.unit
class TestEmailLayout:

    @pytest.mark.parametrize("event, gradient", [
        ("agent_assigned", GRADIENT_AGENT),
        ("password_reset", GRADIENT_SECURITY),
        ("compliance_alert", GRADIENT_ALERT),
        ("signature_requested", GRADIENT_DEFAULT),
        (None, GRADIENT_DEFAULT),
    ])
    def test_header_gradient(self, event, gradient):
        assert header_gradient(event) == gradient

    def test_wraps_fragment_once(self):
        wrapped = apply_layout("<p>Body</p>", "Subject", {"firstName": "Ana", "lastName": "Lee"})
        assert "Dear Ana Lee," in wrapped
        assert "<h1" in wrapped and "Subject" in wrapped
        assert apply_layout(wrapped, "Other", {}) == wrapped
