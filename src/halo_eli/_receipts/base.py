"""
Timestamp helpers shared by every receipt type.

All timestamps are UTC, truncated to millisecond precision and rendered
with a ``Z`` suffix so they compare equal to ones produced by JavaScript's
``Date.prototype.toISOString``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def _normalise_utc_millis(dt: datetime) -> datetime:
    """Return a UTC datetime truncated to millisecond precision."""
    if dt.tzinfo is None:
        coerced = dt.replace(tzinfo=timezone.utc)
    else:
        coerced = dt.astimezone(timezone.utc)
    if coerced.microsecond:
        coerced = coerced.replace(microsecond=(coerced.microsecond // 1000) * 1000)
    return coerced


def utc_iso(dt: Optional[datetime] = None) -> str:
    """ISO-8601 text for *dt* (default: now), e.g. ``2025-02-05T10:00:00.123Z``."""
    dt = _normalise_utc_millis(dt or datetime.now(timezone.utc))
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ["utc_iso"]
