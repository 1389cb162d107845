"""
Steward — Cron-lite matcher.

A 5-field schedule string "minute hour day month weekday". Minute, hour and
weekday accept `*`, single values, comma lists and `a-b` ranges; weekday also
accepts 3-letter names (SUN..SAT) and 7 as Sunday. The day and month fields
are carried for readability but not evaluated.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DOW_NAME_TO_NUM = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}


def _zoned(now: datetime, tz_name: str) -> datetime:
    """Convert to tz_name. Raises ZoneInfoNotFoundError / ValueError on a bad zone."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name))


def _sunday_based_weekday(value: datetime) -> int:
    return (value.weekday() + 1) % 7


def _parse_int(token: str) -> int | None:
    try:
        return int(token)
    except ValueError:
        return None


def _matches_expr(expr: str, value: int, low: int, high: int) -> bool:
    if expr == "*":
        return True

    for token in expr.split(","):
        token = token.strip()
        if not token:
            continue

        if "-" in token:
            start_raw, _, end_raw = token.partition("-")
            start, end = _parse_int(start_raw), _parse_int(end_raw)
            if start is None or end is None:
                continue
            if not (low <= start <= high and low <= end <= high):
                continue
            if start <= value <= end:
                return True
            continue

        num = _parse_int(token)
        if num is not None and low <= num <= high and num == value:
            return True

    return False


def _parse_dow(token: str) -> int | None:
    name = token.strip().lower()[:3]
    if name in _DOW_NAME_TO_NUM:
        return _DOW_NAME_TO_NUM[name]
    num = _parse_int(token.strip())
    if num is None or not 0 <= num <= 7:
        return None
    return num % 7


def _matches_dow(expr: str, weekday: int) -> bool:
    if expr == "*":
        return True

    for token in expr.split(","):
        token = token.strip()
        if not token:
            continue

        if "-" in token:
            start_raw, _, end_raw = token.partition("-")
            start, end = _parse_dow(start_raw), _parse_dow(end_raw)
            if start is None or end is None:
                continue
            if start <= end:
                if start <= weekday <= end:
                    return True
            elif weekday >= start or weekday <= end:
                # wraps past Saturday, e.g. FRI-MON
                return True
            continue

        if _parse_dow(token) == weekday:
            return True

    return False


def should_run_cron_now(cron: str, tz_name: str, now: datetime | None = None) -> bool:
    """True when `now`, seen in tz_name, falls on a minute the schedule names.

    Malformed schedules and unknown time zones never match.
    """
    parts = cron.strip().split()
    if len(parts) != 5:
        return False

    minute_expr, hour_expr, _day, _month, dow_expr = parts
    try:
        local = _zoned(now or datetime.now(timezone.utc), tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False

    return (
        _matches_expr(minute_expr, local.minute, 0, 59)
        and _matches_expr(hour_expr, local.hour, 0, 23)
        and _matches_dow(dow_expr, _sunday_based_weekday(local))
    )


def heartbeat_slot_key(
    job_type: str, user_id: str, tz_name: str, now: datetime | None = None
) -> str:
    """Dedup key for one (job, user) per local minute. Unknown zones fall back to UTC."""
    now = now or datetime.now(timezone.utc)
    try:
        local = _zoned(now, tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        local = _zoned(now, "UTC")

    return ":".join(
        [
            "heartbeat",
            job_type,
            user_id,
            local.strftime("%Y-%m-%d"),
            local.strftime("%H:%M"),
        ]
    )
