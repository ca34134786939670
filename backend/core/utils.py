"""
Utility helpers shared across the back-office.

Includes:
- Naive-UTC datetime helpers (the database stores timezone-naive UTC)
- Note-list helpers for free-text audit columns
- Hourly rate-limit buckets and trailing windows
"""

import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Current datetime in UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    """Current UTC datetime without tzinfo, matching stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_until(target: datetime, now: datetime) -> int:
    """Whole days until ``target``, rounded up (a partial day counts as one)."""
    return math.ceil((target - now).total_seconds() / SECONDS_PER_DAY)


def days_since(start: datetime, now: datetime) -> int:
    """Whole days elapsed since ``start``, rounded down."""
    return math.floor((now - start).total_seconds() / SECONDS_PER_DAY)


def current_hour_bucket(now: Optional[datetime] = None) -> tuple[int, datetime]:
    """Return (bucket_number, bucket_reset_time) for the UTC hour containing ``now``."""
    now = now or utc_now()
    bucket = int(now.timestamp() // 3600)
    reset_at = datetime.fromtimestamp((bucket + 1) * 3600, tz=timezone.utc)
    return bucket, reset_at


def append_note(existing: Optional[str], note: str) -> str:
    """Append a note to a '; '-joined notes column."""
    return f"{existing}; {note}" if existing else note


def generate_token(nbytes: int = 24) -> str:
    """URL-safe random token (signature request tokens, API key secrets)."""
    return secrets.token_urlsafe(nbytes)


def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    """Naive-UTC start of a trailing window of ``days`` days."""
    return (now or utc_now_naive()) - timedelta(days=days)
