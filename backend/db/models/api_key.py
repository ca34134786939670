"""API key model for external integrations.

Keys are presented as ``<key_id>.<secret>``; only a bcrypt hash of the
secret is stored.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class APIKey(BaseModel):
    """Persisted API key for programmatic access.

    Attributes:
        key_id: Public identifier, first half of the presented key
        key_secret_hash: bcrypt hash of the secret half
        name: Human-readable name (e.g. "Lead Intake Form")
        permissions: Permission codes, "*" and "prefix.*" wildcards allowed
        rate_limit: Allowed requests per UTC hour
        is_active: Whether key is active
        expires_at: Optional expiration datetime (naive UTC)
        last_used_at: Timestamp of last successful use
        usage_count: Total number of successful uses
    """

    __tablename__ = "api_keys"

    key_id: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    key_secret_hash: Mapped[str] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(nullable=False)
    permissions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    rate_limit: Mapped[int] = mapped_column(default=1000)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    usage_count: Mapped[int] = mapped_column(default=0)
    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
