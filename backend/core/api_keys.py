"""API Key authentication for external integrations.

Keys are presented in the ``X-API-Key`` header as ``<key_id>.<secret>``.
The key_id locates the row; the secret is checked against a bcrypt hash.
Every accepted request is counted against the key's hourly quota.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from core.rate_limit import HourlyUsageCounter, get_usage_counter
from core.security import hash_password, verify_password
from core.utils import generate_token, utc_now_naive
from db.models.api_key import APIKey

logger = structlog.get_logger(__name__)

# Security schemes
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def generate_api_key(prefix: str = "bo") -> tuple[str, str, str]:
    """Generate a new API key.

    Returns:
        (raw_key, key_id, secret_hash) - raw_key is shown once to the user;
        key_id and secret_hash are stored
    """
    key_id = f"{prefix}_{generate_token(9)}"
    secret = generate_token(32)
    return f"{key_id}.{secret}", key_id, hash_password(secret)


def split_api_key(raw_key: str) -> Optional[tuple[str, str]]:
    """Split ``<key_id>.<secret>``; None when malformed."""
    key_id, sep, secret = raw_key.partition(".")
    if not sep or not key_id or not secret:
        return None
    return key_id, secret


def mask_api_key(key: str) -> str:
    """Mask an API key for display.

    Example: bo_abc...xyz
    """
    if len(key) <= 10:
        return key[:4] + "..." + key[-3:]
    return key[:7] + "..." + key[-4:]


class APIKeyInfo:
    """Resolved API key information."""

    def __init__(
        self,
        id: str,
        key_id: str,
        name: str,
        permissions: list[str],
        rate_limit: int,
        usage_this_hour: int = 0,
        reset_time: Optional[str] = None,
    ):
        self.id = id
        self.key_id = key_id
        self.name = name
        self.permissions = permissions
        self.rate_limit = rate_limit
        self.usage_this_hour = usage_this_hour
        self.reset_time = reset_time

    @property
    def remaining(self) -> int:
        return max(0, self.rate_limit - self.usage_this_hour)

    def has_permission(self, required: str) -> bool:
        """Check if this key has the required permission."""
        for perm in self.permissions:
            if perm == required:
                return True
            # Wildcard support: "triggers.*" matches "triggers.fire"
            if perm.endswith(".*"):
                prefix = perm[:-2]
                if required.startswith(prefix + "."):
                    return True
            # Full wildcard
            if perm == "*":
                return True
        return False


def _invalid_key() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired API key",
    )


async def authenticate_api_key(
    db: AsyncSession,
    raw_key: str,
    counter: Optional[HourlyUsageCounter] = None,
) -> APIKeyInfo:
    """Validate a presented key and count the request.

    Raises:
        HTTPException: 401 for unknown, malformed, inactive or expired keys
        RateLimitExceededError: when the key's hourly quota is used up
    """
    parts = split_api_key(raw_key)
    if parts is None:
        logger.warning("api_key_rejected", api_key=mask_api_key(raw_key), reason="malformed")
        raise _invalid_key()
    key_id, secret = parts

    result = await db.execute(
        select(APIKey).where(APIKey.key_id == key_id, APIKey.is_deleted == False)  # noqa: E712
    )
    db_key = result.scalar_one_or_none()
    now = utc_now_naive()

    if db_key is None or not verify_password(secret, db_key.key_secret_hash):
        logger.warning("api_key_rejected", key_id=key_id, reason="unknown")
        raise _invalid_key()
    if not db_key.is_active:
        logger.warning("api_key_rejected", key_id=key_id, reason="inactive")
        raise _invalid_key()
    if db_key.expires_at is not None and db_key.expires_at <= now:
        logger.warning("api_key_rejected", key_id=key_id, reason="expired")
        raise _invalid_key()

    counter = counter or get_usage_counter()
    used, reset_at = counter.check_and_increment(db_key.id, db_key.rate_limit)

    db_key.last_used_at = now
    db_key.usage_count = (db_key.usage_count or 0) + 1
    await db.flush()

    return APIKeyInfo(
        id=db_key.id,
        key_id=db_key.key_id,
        name=db_key.name,
        permissions=list(db_key.permissions or []),
        rate_limit=db_key.rate_limit,
        usage_this_hour=used,
        reset_time=reset_at.isoformat(),
    )


async def resolve_api_key(
    header_key: Optional[str] = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> APIKeyInfo:
    """Extract and validate the API key from the request."""
    if not header_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
        )
    return await authenticate_api_key(db, header_key)


def require_api_permission(permission: str):
    """Dependency that checks API key has required permission.

    Usage:
        @router.post("/fire")
        async def fire(api_key: APIKeyInfo = Depends(require_api_permission("triggers.fire"))): ...
    """

    async def _check(
        api_key: APIKeyInfo = Security(resolve_api_key),
    ) -> APIKeyInfo:
        if not api_key.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"API key lacks required permission: {permission}",
            )
        return api_key

    return _check
