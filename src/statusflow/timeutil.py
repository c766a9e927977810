"""Timestamp helpers shared by the store and the engine.

All timestamps are stored as ISO-8601 strings in UTC. Naive values read back
from external records are assumed to be UTC.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import UTC, date, datetime

Clock = Callable[[], datetime]

_SECONDS_PER_DAY = 86400


def now_utc() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: str | datetime | date) -> datetime:
    """Parse an ISO timestamp (or a bare ``YYYY-MM-DD`` date) into an aware datetime.

    Raises:
        ValueError: If *value* is not a recognizable timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        msg = f"Expected an ISO timestamp, got {type(value).__name__}"
        raise ValueError(msg)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def elapsed_days(since: str | datetime, now: datetime) -> int:
    """Whole days elapsed between *since* and *now*, rounded down.

    A timestamp in the future yields a negative count, which never satisfies
    a day threshold.
    """
    delta = now - parse_timestamp(since)
    return math.floor(delta.total_seconds() / _SECONDS_PER_DAY)
