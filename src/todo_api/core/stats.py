"""Small statistics helpers shared by the orchestrators."""

from __future__ import annotations

from datetime import datetime, timezone

_SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def whole_days_between(start: datetime, end: datetime) -> int:
    """Number of whole days elapsed from ``start`` to ``end`` (floored)."""
    seconds = (_as_aware(end) - _as_aware(start)).total_seconds()
    return int(seconds // _SECONDS_PER_DAY)


def percentage(part: int, whole: int) -> str:
    """Percentage rendered with two decimals, e.g. ``"33.33"``."""
    if whole <= 0:
        return "0.00"
    return f"{part / whole * 100:.2f}"


def completion_stats(total: int, completed: int) -> dict:
    return {
        "total": total,
        "completed": completed,
        "completion_rate": percentage(completed, total),
    }
