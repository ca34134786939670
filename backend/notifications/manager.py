"""Notification Manager: routes rendered notifications to channels.

Singleton, use get_notification_manager(). Tests build a fresh
NotificationManager and register fake channels on it.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from notifications.channels import (
    BaseChannel,
    DeliveryResult,
    EmailChannel,
    InAppChannel,
    Notification,
    NotificationChannel,
    SlackChannel,
    SmsChannel,
    TeamsChannel,
    WebhookChannel,
)

logger = structlog.get_logger(__name__)


class NotificationManager:
    """Channel registry and delivery entry point."""

    def __init__(self):
        self._channels: dict[NotificationChannel, BaseChannel] = {}
        self._initialized = False

    def register_channel(self, channel: BaseChannel) -> None:
        """Register (or replace) the channel for its channel type."""
        self._channels[channel.channel_type] = channel
        logger.info("notification_channel_registered", channel=channel.channel_type.value)

    def get_channel(self, channel: NotificationChannel) -> Optional[BaseChannel]:
        return self._channels.get(channel)

    def configure_from_settings(self, settings) -> None:
        """Register every channel from application settings."""
        self.register_channel(EmailChannel({
            "provider": settings.EMAIL_PROVIDER,
            "api_key": settings.SENDGRID_API_KEY,
            "api_url": settings.SENDGRID_API_URL,
            "from_address": settings.EMAIL_FROM_ADDRESS,
            "from_name": settings.EMAIL_FROM_NAME,
            "smtp_host": settings.SMTP_HOST,
            "smtp_port": settings.SMTP_PORT,
            "smtp_user": settings.SMTP_USERNAME,
            "smtp_password": settings.SMTP_PASSWORD,
            "use_tls": settings.SMTP_USE_TLS,
            "timeout": settings.HTTP_TIMEOUT_SECONDS,
        }))
        self.register_channel(SmsChannel({
            "account_sid": settings.TWILIO_ACCOUNT_SID,
            "auth_token": settings.TWILIO_AUTH_TOKEN,
            "from_number": settings.TWILIO_FROM_NUMBER,
            "timeout": settings.HTTP_TIMEOUT_SECONDS,
        }))
        self.register_channel(WebhookChannel({"timeout": settings.HTTP_TIMEOUT_SECONDS}))
        self.register_channel(SlackChannel({
            "webhook_url": settings.SLACK_WEBHOOK_URL,
            "timeout": settings.HTTP_TIMEOUT_SECONDS,
        }))
        self.register_channel(TeamsChannel({
            "webhook_url": settings.TEAMS_WEBHOOK_URL,
            "timeout": settings.HTTP_TIMEOUT_SECONDS,
        }))
        self.register_channel(InAppChannel())

        for channel in self._channels.values():
            ok, problem = channel.validate_config()
            if not ok:
                logger.warning(
                    "notification_channel_unconfigured",
                    channel=channel.channel_type.value,
                    problem=problem,
                )
        self._initialized = True

    async def send(
        self, notification: Notification, db: Optional[AsyncSession] = None
    ) -> DeliveryResult:
        """Deliver through the notification's channel.

        Channels report transport failures as results; an exception from a
        channel propagates to the caller.
        """
        channel = self._channels.get(notification.channel)
        if not channel:
            return DeliveryResult(
                success=False,
                channel=notification.channel,
                recipient=notification.recipient,
                error=f"Channel not configured: {notification.channel.value}",
            )

        result = await channel.send(notification, db=db)

        if result.success:
            logger.info(
                "notification_sent",
                channel=notification.channel.value,
                recipient=notification.recipient,
            )
        else:
            logger.warning(
                "notification_failed",
                channel=notification.channel.value,
                recipient=notification.recipient,
                error=result.error,
            )
        return result

    def get_status(self) -> dict:
        return {
            "initialized": self._initialized,
            "channels": sorted(ch.value for ch in self._channels),
        }


# ─── Singleton ─────────────────────────────────────────────────

_manager: Optional[NotificationManager] = None


def get_notification_manager() -> NotificationManager:
    """Get or create the singleton NotificationManager.

    The first call configures channels from settings.
    """
    global _manager
    if _manager is None:
        from app.config import get_settings

        _manager = NotificationManager()
        _manager.configure_from_settings(get_settings())
    return _manager
