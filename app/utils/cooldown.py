"""Cooldown windows between repeated operations on the same player."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable

from app.errors import TooSoon


def utcnow() -> datetime:
    """Naive UTC now, matching the ``timestamp without time zone`` columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def remaining_cooldown(
    last: datetime | None,
    window: timedelta,
    now: datetime,
) -> timedelta:
    """Return how long until the window has elapsed (zero when it already has)."""
    if last is None:
        return timedelta(0)
    elapsed = _as_naive_utc(now) - _as_naive_utc(last)
    if elapsed >= window:
        return timedelta(0)
    return window - elapsed


def check_cooldown(
    last: datetime | None,
    window: timedelta,
    now: datetime,
    *,
    error: Callable[[timedelta], TooSoon] | None = None,
) -> None:
    """Raise if ``now - last`` is still inside ``window``.

    A ``last`` of None means the operation never ran, which always passes.

    Args:
        last: Timestamp of the previous successful operation
        window: Minimum spacing between operations
        now: Current time
        error: Builds the exception from the remaining wait time

    Raises:
        TooSoon: Or whatever subclass ``error`` returns
    """
    remaining = remaining_cooldown(last, window, now)
    if remaining <= timedelta(0):
        return
    if error is not None:
        raise error(remaining)
    raise TooSoon(f"Please wait another {_format_wait(remaining)}.")


def _format_wait(remaining: timedelta) -> str:
    seconds = max(1, int(remaining.total_seconds()))
    if seconds < 60:
        return f"{seconds} seconds"
    minutes = -(-seconds // 60)
    return f"{minutes} minutes"
