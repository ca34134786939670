"""Constants and enums for the merchant back-office."""

from enum import Enum


class ActionType(str, Enum):
    """Delivery channel of an action template."""

    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    NOTIFICATION = "notification"
    SLACK = "slack"
    TEAMS = "teams"


class ActivityStatus(str, Enum):
    """Outcome recorded for one attempted action."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutboxStatus(str, Enum):
    """Lifecycle of a queued outbound message."""

    PENDING = "pending"
    DELIVERED = "delivered"
    DEAD = "dead"


class SignatureStatus(str, Enum):
    """Signature capture request status."""

    REQUESTED = "requested"
    COMPLETED = "completed"
    EXPIRED = "expired"


class CommunicationPreference(str, Enum):
    """Per-user opt-in for outbound channels."""

    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


class TriggerSource(str, Enum):
    """Who or what fired a trigger."""

    API = "api"
    MANUAL = "manual"
    INTEGRATION = "integration"
    OUTBOX = "outbox"
    SIGNATURE_EXPIRATION = "signature_expiration_service"
    SIGNATURE_WORKFLOW = "signature_workflow"


class AlertType(str, Enum):
    """Severity of an in-app alert."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# Trigger fired when the sweep expires a signature request
SIGNATURE_EXPIRED_TRIGGER = "signature_expired"

# Signature request lifetime
SIGNATURE_EXPIRY_DAYS = 7

REMINDER_3_DAY_TEMPLATE = "Signature Expiration Reminder - 3 Days"
REMINDER_1_DAY_TEMPLATE = "Signature Expiration Reminder - 1 Day"
