"""Per-channel validation of action template configs.

Configs are stored with camelCase keys. Validation returns the
normalized dict or raises core.exceptions.ValidationError naming the
first offending field, e.g. ``config.htmlContent``.
"""

import json
import re
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.constants import ActionType
from core.exceptions import ValidationError

URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SMS_MAX_LENGTH = 1600


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not URL_RE.match(value):
        raise ValueError("must be a valid http(s) URL")
    return value


class _ChannelConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class EmailConfig(_ChannelConfig):
    subject: str = Field(min_length=1)
    html_content: str = Field(alias="htmlContent", min_length=1)
    text_content: Optional[str] = Field(default=None, alias="textContent")
    from_email: Optional[str] = Field(default=None, alias="fromEmail")
    from_name: Optional[str] = Field(default=None, alias="fromName")
    reply_to: Optional[str] = Field(default=None, alias="replyTo")

    @field_validator("from_email", "reply_to")
    @classmethod
    def _email_address(cls, v: Optional[str]) -> Optional[str]:
        # Tokens are allowed; they resolve at send time
        if v and "{{" not in v and not EMAIL_RE.match(v):
            raise ValueError("must be a valid email address")
        return v


class SmsConfig(_ChannelConfig):
    message: str = Field(min_length=1, max_length=SMS_MAX_LENGTH)
    from_number: Optional[str] = Field(default=None, alias="from")


class WebhookAuthentication(BaseModel):
    type: Literal["none", "bearer", "basic", "api_key"] = "none"
    credentials: dict[str, Any] = Field(default_factory=dict)


class WebhookConfig(_ChannelConfig):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
    headers: Optional[dict[str, str]] = None
    body: Optional[Union[dict, list, str]] = None
    authentication: Optional[WebhookAuthentication] = None

    @field_validator("url")
    @classmethod
    def _valid_url(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class NotificationConfig(_ChannelConfig):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: Literal["info", "success", "warning", "error"] = "info"
    action_url: Optional[str] = Field(default=None, alias="actionUrl")
    icon: Optional[str] = None


class ChatConfig(_ChannelConfig):
    """Slack and Teams share one shape."""

    message: str = Field(min_length=1)
    title: Optional[str] = None
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    channel: Optional[str] = None
    username: Optional[str] = None
    icon_emoji: Optional[str] = Field(default=None, alias="iconEmoji")
    blocks: Optional[list] = None

    @field_validator("webhook_url")
    @classmethod
    def _valid_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


CONFIG_MODELS: dict[ActionType, type[_ChannelConfig]] = {
    ActionType.EMAIL: EmailConfig,
    ActionType.SMS: SmsConfig,
    ActionType.WEBHOOK: WebhookConfig,
    ActionType.NOTIFICATION: NotificationConfig,
    ActionType.SLACK: ChatConfig,
    ActionType.TEAMS: ChatConfig,
}


def parse_action_type(value: str) -> ActionType:
    """Resolve an action type string, raising ValidationError on unknown types."""
    try:
        return ActionType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ActionType)
        raise ValidationError(
            f"Unsupported action type '{value}' (expected one of: {allowed})",
            field="action_type",
        )


def _first_error(exc: PydanticValidationError) -> tuple[str, str]:
    error = exc.errors()[0]
    loc = ".".join(str(part) for part in error["loc"])
    return loc, error["msg"]


def validate_config(action_type: str, config: Any) -> dict:
    """Validate ``config`` for ``action_type`` and return it normalized.

    Raises:
        ValidationError: with ``field`` set to ``config.<first bad key>``
    """
    kind = parse_action_type(action_type)
    if not isinstance(config, dict):
        raise ValidationError("Config must be a JSON object", field="config")

    try:
        model = CONFIG_MODELS[kind].model_validate(config)
    except PydanticValidationError as exc:
        loc, msg = _first_error(exc)
        field = f"config.{loc}" if loc else "config"
        raise ValidationError(f"Invalid {kind.value} config: {field}: {msg}", field=field)

    return model.model_dump(by_alias=True, exclude_none=True)


def parse_variables(variables: Any) -> dict[str, str]:
    """Accept a variables mapping or a JSON string encoding one."""
    if variables is None or variables == "":
        return {}
    if isinstance(variables, str):
        try:
            variables = json.loads(variables)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Variables must be valid JSON: {exc.msg}", field="variables")
    if not isinstance(variables, dict):
        raise ValidationError("Variables must be an object of name -> description", field="variables")
    return {str(name): "" if desc is None else str(desc) for name, desc in variables.items()}
