"""Notification channel implementations.

Each channel delivers one rendered Notification over one transport
(SendGrid/SMTP email, Twilio SMS, HTTP webhook, Slack, Teams, in-app
alert). Channels never raise: transport errors come back as a failed
DeliveryResult. The NotificationManager routes to the right channel.
"""

import asyncio
import base64
import smtplib
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ActionType

logger = structlog.get_logger(__name__)

# Channel identifiers are the template action types
NotificationChannel = ActionType


# ─── Data Types ────────────────────────────────────────────────

@dataclass
class Notification:
    """A rendered message ready for delivery.

    ``title`` is the email subject / alert or chat title, ``message`` the
    plain-text body. ``config`` carries the rendered channel config for
    transport details (webhook method/headers/body, sender overrides...).
    """
    channel: NotificationChannel
    recipient: str = ""
    title: str = ""
    message: str = ""
    html: Optional[str] = None
    config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["channel"] = self.channel.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        data = dict(data)
        data["channel"] = NotificationChannel(data["channel"])
        return cls(**data)


@dataclass
class DeliveryResult:
    """Result of a notification delivery attempt."""
    success: bool
    channel: NotificationChannel
    recipient: str
    message: str = ""
    error: Optional[str] = None
    response_data: Optional[dict] = None
    delivered_at: Optional[str] = None

    @property
    def status_message(self) -> str:
        return self.message if self.success else (self.error or self.message or "Delivery failed")


def _delivered(channel, recipient, message, response_data=None) -> DeliveryResult:
    return DeliveryResult(
        success=True,
        channel=channel,
        recipient=recipient,
        message=message,
        response_data=response_data,
        delivered_at=datetime.now(timezone.utc).isoformat(),
    )


def _failed(channel, recipient, error, response_data=None) -> DeliveryResult:
    return DeliveryResult(
        success=False,
        channel=channel,
        recipient=recipient,
        error=error,
        response_data=response_data,
    )


# ─── Base Channel ──────────────────────────────────────────────

class BaseChannel(ABC):
    """Abstract base for notification channels."""

    channel_type: NotificationChannel

    @abstractmethod
    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        """Send a notification through this channel."""
        ...

    def validate_config(self) -> tuple[bool, Optional[str]]:
        """Check the channel has what it needs to deliver."""
        return True, None


class HttpChannel(BaseChannel):
    """Base for channels talking HTTP through httpx."""

    def __init__(self, config: dict = None, transport: httpx.AsyncBaseTransport = None):
        self.config = config or {}
        self._transport = transport
        self._timeout = self.config.get("timeout", 30.0)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)


# ─── Email Channel ─────────────────────────────────────────────

class EmailChannel(HttpChannel):
    """Send email through SendGrid (v3 HTTP API) or SMTP.

    Config:
        provider ("sendgrid" | "smtp"), api_key, api_url,
        from_address, from_name, smtp_host, smtp_port, smtp_user,
        smtp_password, use_tls
    """

    channel_type = NotificationChannel.EMAIL

    def validate_config(self) -> tuple[bool, Optional[str]]:
        if self.config.get("provider", "sendgrid") == "sendgrid":
            if not self.config.get("api_key"):
                return False, "Missing SendGrid api_key"
        elif not self.config.get("smtp_host"):
            return False, "Missing smtp_host"
        return True, None

    def _sender(self, notification: Notification) -> tuple[str, Optional[str]]:
        cfg = notification.config
        return (
            cfg.get("fromEmail") or self.config.get("from_address", "noreply@localhost"),
            cfg.get("fromName") or self.config.get("from_name"),
        )

    def build_sendgrid_payload(self, notification: Notification) -> dict:
        from_email, from_name = self._sender(notification)
        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": notification.recipient}]}],
            "from": {"email": from_email},
            "subject": notification.title,
        }
        if from_name:
            payload["from"]["name"] = from_name
        reply_to = notification.config.get("replyTo")
        if reply_to:
            payload["reply_to"] = {"email": reply_to}

        # SendGrid requires text/plain before text/html
        content = []
        if notification.message:
            content.append({"type": "text/plain", "value": notification.message})
        if notification.html:
            content.append({"type": "text/html", "value": notification.html})
        payload["content"] = content
        return payload

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        if not notification.recipient:
            return _failed(self.channel_type, "", "No email recipient")

        ok, problem = self.validate_config()
        if not ok:
            return _failed(self.channel_type, notification.recipient, problem)

        try:
            if self.config.get("provider", "sendgrid") == "smtp":
                await asyncio.get_running_loop().run_in_executor(
                    None, self._send_smtp, notification
                )
                return _delivered(self.channel_type, notification.recipient, "Email sent")

            async with self._client() as client:
                response = await client.post(
                    self.config.get("api_url", "https://api.sendgrid.com/v3/mail/send"),
                    json=self.build_sendgrid_payload(notification),
                    headers={"Authorization": f"Bearer {self.config['api_key']}"},
                )
            if response.status_code >= 400:
                return _failed(
                    self.channel_type,
                    notification.recipient,
                    f"SendGrid HTTP {response.status_code}",
                    {"status": response.status_code, "body": response.text},
                )
            return _delivered(
                self.channel_type,
                notification.recipient,
                "Email sent successfully",
                {"message_id": response.headers.get("X-Message-Id")},
            )

        except Exception as e:
            logger.error("email_send_failed", recipient=notification.recipient, error=str(e))
            return _failed(self.channel_type, notification.recipient, str(e))

    def _send_smtp(self, notification: Notification) -> None:
        from_email, from_name = self._sender(notification)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = notification.title
        msg["From"] = f"{from_name} <{from_email}>" if from_name else from_email
        msg["To"] = notification.recipient
        if notification.config.get("replyTo"):
            msg["Reply-To"] = notification.config["replyTo"]
        if notification.message:
            msg.attach(MIMEText(notification.message, "plain"))
        if notification.html:
            msg.attach(MIMEText(notification.html, "html"))

        with smtplib.SMTP(self.config.get("smtp_host", "localhost"), self.config.get("smtp_port", 587)) as server:
            if self.config.get("use_tls", True):
                server.starttls()
            if self.config.get("smtp_user") and self.config.get("smtp_password"):
                server.login(self.config["smtp_user"], self.config["smtp_password"])
            server.sendmail(from_email, notification.recipient, msg.as_string())


# ─── SMS Channel ───────────────────────────────────────────────

class SmsChannel(HttpChannel):
    """Send SMS through the Twilio Messages REST API.

    Config:
        account_sid, auth_token, from_number
    """

    channel_type = NotificationChannel.SMS
    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def validate_config(self) -> tuple[bool, Optional[str]]:
        if not self.config.get("account_sid") or not self.config.get("auth_token"):
            return False, "Missing Twilio account_sid/auth_token"
        return True, None

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        if not notification.recipient:
            return _failed(self.channel_type, "", "No SMS recipient")

        ok, problem = self.validate_config()
        if not ok:
            return _failed(self.channel_type, notification.recipient, problem)

        sid = self.config["account_sid"]
        data = {
            "To": notification.recipient,
            "From": notification.config.get("from") or self.config.get("from_number", ""),
            "Body": notification.message,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    self.API_URL.format(sid=sid),
                    auth=(sid, self.config["auth_token"]),
                    data=data,
                )
            body = response.json() if response.content else {}
            if response.status_code not in (200, 201):
                code = body.get("code")
                error = body.get("message", f"HTTP {response.status_code}")
                return _failed(
                    self.channel_type,
                    notification.recipient,
                    f"[{code}] {error}" if code else error,
                    body,
                )
            return _delivered(
                self.channel_type,
                notification.recipient,
                "SMS sent",
                {"sid": body.get("sid"), "status": body.get("status")},
            )

        except Exception as e:
            logger.error("sms_send_failed", recipient=notification.recipient, error=str(e))
            return _failed(self.channel_type, notification.recipient, str(e))


# ─── Webhook Channel ──────────────────────────────────────────

def build_auth_headers(authentication: Optional[dict]) -> dict[str, str]:
    """Headers for the webhook ``authentication`` block."""
    if not authentication:
        return {}
    kind = authentication.get("type", "none")
    creds = authentication.get("credentials") or {}
    if kind == "bearer":
        return {"Authorization": f"Bearer {creds.get('token', '')}"}
    if kind == "basic":
        raw = f"{creds.get('username', '')}:{creds.get('password', '')}".encode()
        return {"Authorization": f"Basic {base64.b64encode(raw).decode()}"}
    if kind == "api_key":
        return {creds.get("headerName") or "X-API-Key": creds.get("apiKey", "")}
    return {}


class WebhookChannel(HttpChannel):
    """Send the rendered body to an arbitrary HTTP endpoint.

    The target comes from the rendered template config (url, method,
    headers, body, authentication). GET requests carry no body.
    """

    channel_type = NotificationChannel.WEBHOOK

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        cfg = notification.config
        url = cfg.get("url") or notification.recipient
        if not url:
            return _failed(self.channel_type, "", "No webhook URL")

        method = (cfg.get("method") or "POST").upper()
        headers = {
            "Content-Type": "application/json",
            **(cfg.get("headers") or {}),
            **build_auth_headers(cfg.get("authentication")),
        }
        body = cfg.get("body")

        try:
            async with self._client() as client:
                if method == "GET" or body is None:
                    response = await client.request(method, url, headers=headers)
                elif isinstance(body, str):
                    response = await client.request(method, url, headers=headers, content=body)
                else:
                    response = await client.request(method, url, headers=headers, json=body)

            response_data = {"status": response.status_code, "body": response.text}
            if not response.is_success:
                return _failed(self.channel_type, url, f"HTTP {response.status_code}", response_data)
            return _delivered(self.channel_type, url, f"HTTP {response.status_code}", response_data)

        except Exception as e:
            logger.error("webhook_send_failed", url=url, error=str(e))
            return _failed(self.channel_type, url, str(e))


# ─── Slack / Teams Channels ───────────────────────────────────

class SlackChannel(HttpChannel):
    """Post to a Slack incoming webhook.

    Config:
        webhook_url: default webhook when the template has none
    """

    channel_type = NotificationChannel.SLACK

    def build_payload(self, notification: Notification) -> dict:
        cfg = notification.config
        if cfg.get("blocks"):
            blocks = cfg["blocks"]
        else:
            blocks = []
            if notification.title:
                blocks.append({
                    "type": "header",
                    "text": {"type": "plain_text", "text": notification.title},
                })
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": notification.message},
            })
        payload: dict[str, Any] = {"text": notification.message, "blocks": blocks}
        if cfg.get("channel"):
            payload["channel"] = cfg["channel"]
        if cfg.get("username"):
            payload["username"] = cfg["username"]
        if cfg.get("iconEmoji"):
            payload["icon_emoji"] = cfg["iconEmoji"]
        return payload

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        webhook_url = notification.config.get("webhookUrl") or self.config.get("webhook_url")
        recipient = notification.recipient or notification.config.get("channel") or "slack"
        if not webhook_url:
            return _failed(self.channel_type, recipient, "No Slack webhook URL configured")

        try:
            async with self._client() as client:
                response = await client.post(webhook_url, json=self.build_payload(notification))
                response.raise_for_status()
            return _delivered(self.channel_type, recipient, "Slack message sent")
        except Exception as e:
            logger.error("slack_send_failed", error=str(e))
            return _failed(self.channel_type, recipient, str(e))


class TeamsChannel(HttpChannel):
    """Post a MessageCard to a Microsoft Teams incoming webhook."""

    channel_type = NotificationChannel.TEAMS

    def build_payload(self, notification: Notification) -> dict:
        card: dict[str, Any] = {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": notification.title or notification.message[:60],
            "themeColor": "0076D7",
            "text": notification.message,
        }
        if notification.title:
            card["title"] = notification.title
        return card

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        webhook_url = notification.config.get("webhookUrl") or self.config.get("webhook_url")
        recipient = notification.recipient or "teams"
        if not webhook_url:
            return _failed(self.channel_type, recipient, "No Teams webhook URL configured")

        try:
            async with self._client() as client:
                response = await client.post(webhook_url, json=self.build_payload(notification))
                response.raise_for_status()
            return _delivered(self.channel_type, recipient, "Teams message sent")
        except Exception as e:
            logger.error("teams_send_failed", error=str(e))
            return _failed(self.channel_type, recipient, str(e))


# ─── In-app Channel ───────────────────────────────────────────

class InAppChannel(BaseChannel):
    """Create a UserAlert row for the recipient user id."""

    channel_type = NotificationChannel.NOTIFICATION

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        if db is None:
            return _failed(self.channel_type, notification.recipient, "In-app alerts need a database session")
        if not notification.recipient:
            return _failed(self.channel_type, "", "No user id for in-app alert")

        from db.models.user_alert import UserAlert

        try:
            alert = UserAlert(
                user_id=notification.recipient,
                title=notification.title or None,
                message=notification.message,
                type=notification.config.get("type", "info"),
                action_url=notification.config.get("actionUrl"),
                is_read=False,
            )
            async with db.begin_nested():
                db.add(alert)
            return _delivered(
                self.channel_type,
                notification.recipient,
                "Alert created successfully",
                {"alert_id": alert.id, "type": alert.type},
            )
        except Exception as e:
            logger.error("in_app_alert_failed", user_id=notification.recipient, error=str(e))
            return _failed(self.channel_type, notification.recipient, str(e))
