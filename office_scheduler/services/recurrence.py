"""Expansion of an event's recurrence pattern into concrete occurrences.

All times here are wall-clock times in the event's own timezone; conversion to
absolute instants happens elsewhere.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from office_scheduler.domain.models import RecurrencePattern, RecurrenceType, Weekday


def expand(
    base_start: datetime,
    base_end: datetime,
    pattern: RecurrencePattern | None,
    horizon_end: datetime,
) -> list[tuple[datetime, datetime]]:
    """Return the ordered ``(start, end)`` pairs produced by *pattern*.

    Without a pattern the event happens once, at its base time, regardless of
    the horizon. Otherwise iteration starts at *base_start* and stops at the
    first of: passing *horizon_end*, passing ``pattern.end_date``, or emitting
    ``pattern.max_occurrences`` pairs. Every pair lasts ``base_end - base_start``.
    """
    if pattern is None:
        return [(base_start, base_end)]

    duration = base_end - base_start
    weekdays = sorted(set(pattern.days_of_week))

    occurrences: list[tuple[datetime, datetime]] = []
    current = base_start
    count = 0

    while current <= horizon_end:
        if pattern.end_date is not None and current.date() > pattern.end_date:
            break
        if pattern.max_occurrences is not None and count >= pattern.max_occurrences:
            break

        if _qualifies(current, pattern.type, weekdays):
            occurrences.append((current, current + duration))
            count += 1

        current = _advance(current, pattern, weekdays)

    return occurrences


def _qualifies(
    current: datetime, kind: RecurrenceType, weekdays: list[Weekday]
) -> bool:
    if kind in (RecurrenceType.WEEKLY, RecurrenceType.BIWEEKLY) and weekdays:
        return Weekday.of(current) in weekdays
    return True


def _advance(
    current: datetime, pattern: RecurrencePattern, weekdays: list[Weekday]
) -> datetime:
    if pattern.type == RecurrenceType.DAILY:
        return current + timedelta(days=pattern.interval)
    if pattern.type == RecurrenceType.MONTHLY:
        # relativedelta clamps to the last day of shorter months
        return current + relativedelta(months=pattern.interval)
    if pattern.type == RecurrenceType.WEEKLY:
        if len(weekdays) <= 1:
            return current + timedelta(weeks=pattern.interval)
        return _next_weekday(current, weekdays, skip_days=7 * (pattern.interval - 1))
    if pattern.type == RecurrenceType.BIWEEKLY:
        if len(weekdays) <= 1:
            return current + timedelta(days=14)
        return _next_weekday(current, weekdays, skip_days=7)
    raise ValueError(f"Unsupported recurrence type: {pattern.type}")


def _next_weekday(
    current: datetime, weekdays: list[Weekday], skip_days: int
) -> datetime:
    """Step to the next configured weekday of the Sunday-first week.

    When the current week is used up, jump to the earliest configured weekday
    of the following week and then skip *skip_days* more.
    """
    today = Weekday.of(current)
    for day in weekdays:
        if day > today:
            return current + timedelta(days=day - today)

    days_to_first = (weekdays[0] - today) % 7 or 7
    return current + timedelta(days=days_to_first + skip_days)
