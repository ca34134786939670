"""Action template model."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class ActionTemplate(BaseModel):
    """Reusable, channel-specific message definition.

    Attributes:
        name: Unique-ish human name; the signature sweep looks reminder
            templates up by name
        action_type: email, sms, webhook, notification, slack or teams
        category: Free-form grouping ("signature", "onboarding", ...)
        config: Channel config with camelCase keys, e.g.
            email:        {"subject", "htmlContent", "textContent", "fromEmail", ...}
            sms:          {"message", "from"}
            webhook:      {"url", "method", "headers", "body", "authentication"}
            notification: {"title", "message", "type", "actionUrl", "icon"}
            slack/teams:  {"message", "title", "webhookUrl", "channel", ...}
        variables: Mapping of variable name to description
        version: Incremented on every update
    """

    __tablename__ = "action_templates"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[str] = mapped_column(nullable=False, index=True)
    category: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    variables: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, default=dict)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    version: Mapped[int] = mapped_column(default=1)
