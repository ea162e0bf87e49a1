"""Usage policy evaluation.

Decides whether a child may use the device right now. The device agent's
overlay guard calls this to drive the lock screen. Pure: no I/O, no state.
"""

from datetime import datetime

from .models import Policy, QuietHours, UsageSnapshot


def is_usage_allowed(
    policy: Policy | None,
    usage: UsageSnapshot | None,
    now: datetime | None = None,
) -> bool:
    """Return True if usage is allowed at ``now``.

    Missing policy or usage data allows usage. An exhausted budget denies
    before quiet hours are looked at. Quiet hours use the local hour and
    minute of ``now``; ``start`` is quiet, ``end`` is not.
    """
    if policy is None or usage is None:
        return True

    if usage.budget_minutes <= 0 or usage.used_minutes >= usage.budget_minutes:
        return False

    if now is None:
        now = datetime.now()
    current = now.hour * 60 + now.minute

    for interval in policy.quiet_hours:
        bounds = quiet_interval_minutes(interval)
        if bounds is None:
            continue
        if _in_interval(current, *bounds):
            return False

    return True


def quiet_interval_minutes(interval: QuietHours) -> tuple[int, int] | None:
    """Return ``(start, end)`` as minutes since midnight.

    Returns None for entries with a missing or malformed bound.
    """
    if not interval.start or not interval.end:
        return None
    start = parse_clock(interval.start)
    end = parse_clock(interval.end)
    if start is None or end is None:
        return None
    return start, end


def parse_clock(value: str) -> int | None:
    """Parse ``HH:MM`` into minutes since midnight, or None if invalid."""
    parts = value.split(":")
    if len(parts) < 2:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def _in_interval(current: int, start: int, end: int) -> bool:
    if start < end:
        return start <= current < end
    if start > end:
        # Crosses midnight, e.g. 22:00 to 07:00
        return current >= start or current < end
    # start == end covers the whole day
    return True
