"""Variable rendering for action templates.

Templates carry ``{{name}}`` tokens. Rendering is a pure string
substitution: no expressions, no filters, no escaping, no nesting.

Substitution rule: a token is replaced only when the value is present
*and truthy*. A value of ``""``, ``None``, ``0`` or ``False`` leaves the
token in place, braces included. Existing templates and the admin
preview depend on this, so it is kept as-is.
"""

import re
from typing import Any, Iterable, Mapping, Optional

TOKEN_PATTERN = re.compile(r"\{\{(.*?)\}\}")

# Config keys rendered per channel. Anything else in a config (method,
# authentication, type, icon...) is passed through untouched.
TEXT_FIELDS: dict[str, tuple[str, ...]] = {
    "email": ("subject", "htmlContent", "textContent", "fromName", "replyTo"),
    "sms": ("message",),
    "webhook": ("url",),
    "notification": ("title", "message", "actionUrl"),
    "slack": ("message", "title", "channel"),
    "teams": ("message", "title"),
}

# Config keys whose nested structure is rendered recursively
STRUCTURED_FIELDS: dict[str, tuple[str, ...]] = {
    "webhook": ("headers", "body"),
    "slack": ("blocks",),
}


def render_template(text: str, values: Mapping[str, Any]) -> str:
    """Replace every ``{{name}}`` token with ``values[name]``.

    Tokens with a missing or falsy value are left unchanged.

    >>> render_template("Hi {{name}}", {"name": "Ana"})
    'Hi Ana'
    >>> render_template("Hi {{name}}", {"name": ""})
    'Hi {{name}}'
    """
    if not text:
        return text or ""

    def _substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        return str(value) if value else match.group(0)

    return TOKEN_PATTERN.sub(_substitute, text)


def extract_variables(*texts: str) -> list[str]:
    """Token names across all given strings, deduplicated in first-seen order."""
    seen: dict[str, None] = {}
    for text in texts:
        if not text:
            continue
        for name in TOKEN_PATTERN.findall(text):
            seen.setdefault(name, None)
    return list(seen)


def render_value(value: Any, values: Mapping[str, Any]) -> Any:
    """Render strings anywhere inside nested dicts/lists."""
    if isinstance(value, str):
        return render_template(value, values)
    if isinstance(value, dict):
        return {key: render_value(item, values) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, values) for item in value]
    return value


def _iter_strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_strings(item)


def template_texts(action_type: str, config: Mapping[str, Any]) -> list[str]:
    """All renderable strings of a template config, in field order."""
    texts = [config.get(key) for key in TEXT_FIELDS.get(action_type, ())]
    texts = [text for text in texts if isinstance(text, str)]
    for key in STRUCTURED_FIELDS.get(action_type, ()):
        texts.extend(_iter_strings(config.get(key)))
    return texts


def template_variables(action_type: str, config: Mapping[str, Any]) -> list[str]:
    """Variables referenced by a template config."""
    return extract_variables(*template_texts(action_type, config))


def render_config(action_type: str, config: Mapping[str, Any], values: Mapping[str, Any]) -> dict:
    """Return a copy of ``config`` with its text fields rendered."""
    rendered = dict(config)
    for key in TEXT_FIELDS.get(action_type, ()):
        if isinstance(rendered.get(key), str):
            rendered[key] = render_template(rendered[key], values)
    for key in STRUCTURED_FIELDS.get(action_type, ()):
        if rendered.get(key) is not None:
            rendered[key] = render_value(rendered[key], values)
    return rendered


def compose_notification(
    action_type: str,
    config: Mapping[str, Any],
    context: Mapping[str, Any],
    recipient: str = "",
    user_id: Optional[str] = None,
    metadata: Optional[dict] = None,
):
    """Render a template config into a deliverable Notification."""
    from notifications.channels import Notification, NotificationChannel
    from notifications.email_layout import apply_layout

    channel = NotificationChannel(action_type)
    rendered = render_config(action_type, config, context)
    title = ""
    message = ""
    html = None

    if channel == NotificationChannel.EMAIL:
        title = rendered.get("subject", "")
        message = rendered.get("textContent") or ""
        html = apply_layout(rendered.get("htmlContent", ""), title, context)
    elif channel == NotificationChannel.WEBHOOK:
        if rendered.get("body") is None:
            rendered["body"] = dict(context)
        message = rendered.get("url", "")
    else:
        title = rendered.get("title") or ""
        message = rendered.get("message", "")

    return Notification(
        channel=channel,
        recipient=recipient,
        title=title,
        message=message,
        html=html,
        config=rendered,
        metadata=metadata or {},
        user_id=user_id,
    )
