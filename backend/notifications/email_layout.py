"""Branded HTML layout for outbound email.

Bodies authored as fragments are wrapped in a 600px card with a colored
header. Bodies that already carry the layout are sent as-is.
"""

from datetime import datetime, timezone
from html import escape
from typing import Any, Mapping, Optional

LAYOUT_MARKER = "max-width: 600px"

GRADIENT_DEFAULT = "linear-gradient(135deg, #059669 0%, #10b981 100%)"
GRADIENT_AGENT = "linear-gradient(135deg, #7c3aed 0%, #a855f7 100%)"
GRADIENT_SECURITY = "linear-gradient(135deg, #1e40af 0%, #3b82f6 100%)"
GRADIENT_ALERT = "linear-gradient(135deg, #dc2626 0%, #ef4444 100%)"

_GRADIENT_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("agent", "notification"), GRADIENT_AGENT),
    (("security", "password", "login"), GRADIENT_SECURITY),
    (("alert", "warning"), GRADIENT_ALERT),
)


def is_wrapped(html_body: str) -> bool:
    return LAYOUT_MARKER in (html_body or "")


def header_gradient(trigger_event: Optional[str]) -> str:
    """Pick the header color from keywords in the trigger key."""
    event = trigger_event or ""
    for keywords, gradient in _GRADIENT_RULES:
        if any(word in event for word in keywords):
            return gradient
    return GRADIENT_DEFAULT


def recipient_name(context: Mapping[str, Any]) -> Optional[str]:
    first, last = context.get("firstName"), context.get("lastName")
    if first and last:
        return f"{first} {last}"
    return first or context.get("recipientName") or None


def wrap_email(
    content: str,
    title: str,
    gradient: str = GRADIENT_DEFAULT,
    name: Optional[str] = None,
    brand: str = "Core CRM",
) -> str:
    """Wrap an HTML fragment in the branded layout."""
    greeting = (
        f'<p style="font-size: 16px; color: #333; margin-bottom: 20px;">Dear {escape(name)},</p>'
        if name else ""
    )
    year = datetime.now(timezone.utc).year
    return f"""
    <div style="font-family: Arial, sans-serif; {LAYOUT_MARKER}; margin: 0 auto;">
      <div style="background: {gradient}; color: white; padding: 30px; text-align: center;">
        <h1 style="margin: 0; font-size: 24px;">{escape(title)}</h1>
      </div>
      <div style="padding: 30px; background: #ffffff;">
        {greeting}
        {content}
      </div>
      <div style="background: #f9fafb; padding: 20px; text-align: center; color: #6b7280; font-size: 12px;">
        <p style="margin: 0;">This email was sent by {brand} automated notification system.</p>
        <p style="margin: 5px 0 0 0;">&copy; {year} {brand}. All rights reserved.</p>
      </div>
    </div>
    """


def apply_layout(html_body: str, subject: str, context: Mapping[str, Any]) -> str:
    """Wrap ``html_body`` unless it already carries the layout."""
    if is_wrapped(html_body):
        return html_body
    return wrap_email(
        html_body,
        title=subject,
        gradient=header_gradient(context.get("triggerEvent")),
        name=recipient_name(context),
    )
