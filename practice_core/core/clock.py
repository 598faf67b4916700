"""Epoch-millisecond time helpers shared by the ledger, pool and scheduler."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_datetime(ts_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


def day_key(ts_ms: int) -> str:
    """Calendar day (UTC) of a timestamp as YYYY-MM-DD."""
    return to_datetime(ts_ms).strftime("%Y-%m-%d")


def month_key(ts_ms: int) -> str:
    """Calendar month (UTC) of a timestamp as YYYY-MM."""
    return to_datetime(ts_ms).strftime("%Y-%m")
