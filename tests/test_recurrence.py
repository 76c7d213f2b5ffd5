"""Tests for expanding recurrence patterns into occurrences."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pydantic
import pytest

from office_scheduler.domain.models import RecurrencePattern, RecurrenceType, Weekday
from office_scheduler.services.recurrence import expand

MON = datetime(2026, 3, 2, 9, 0)  # a Monday
HOUR = timedelta(hours=1)
FAR = datetime(2027, 12, 31)


def _starts(pairs):
    return [start for start, _ in pairs]


def _weekly(*days, interval=1, **kw) -> RecurrencePattern:
    return RecurrencePattern(
        type=RecurrenceType.WEEKLY, days_of_week=list(days), interval=interval, **kw
    )


# ---------------------------------------------------------------------------
# Single events
# ---------------------------------------------------------------------------


def test_no_pattern_returns_base_pair():
    assert expand(MON, MON + HOUR, None, MON - timedelta(days=30)) == [(MON, MON + HOUR)]


# ---------------------------------------------------------------------------
# Weekly / bi-weekly
# ---------------------------------------------------------------------------


def test_weekly_monday_with_max_four():
    pairs = expand(MON, MON + HOUR, _weekly(Weekday.MONDAY, max_occurrences=4), FAR)

    assert len(pairs) == 4
    for i, (start, end) in enumerate(pairs):
        assert start == MON + timedelta(weeks=i)
        assert start.weekday() == 0
        assert (start.hour, end.hour) == (9, 10)


def test_weekly_monday_wednesday_alternates_without_skipping():
    pairs = expand(MON, MON + HOUR, _weekly(Weekday.MONDAY, Weekday.WEDNESDAY), datetime(2026, 3, 19))

    assert [d.date() for d in _starts(pairs)] == [
        date(2026, 3, 2),
        date(2026, 3, 4),
        date(2026, 3, 9),
        date(2026, 3, 11),
        date(2026, 3, 16),
        date(2026, 3, 18),
    ]


def test_weekly_multiple_days_with_interval_skips_weeks():
    pattern = _weekly(Weekday.MONDAY, Weekday.WEDNESDAY, interval=2)
    pairs = expand(MON, MON + HOUR, pattern, datetime(2026, 3, 31))

    assert [d.day for d in _starts(pairs)] == [2, 4, 16, 18, 30]


def test_weekly_single_day_with_interval():
    pairs = expand(MON, MON + HOUR, _weekly(Weekday.MONDAY, interval=3), datetime(2026, 4, 30))
    assert [d.date() for d in _starts(pairs)] == [
        date(2026, 3, 2),
        date(2026, 3, 23),
        date(2026, 4, 13),
    ]


def test_weeks_run_sunday_first():
    # From Saturday the next configured day is the following Sunday, which
    # opens the next cycle, so the interval skip applies.
    saturday = datetime(2026, 3, 7, 9, 0)
    pattern = _weekly(Weekday.SATURDAY, Weekday.SUNDAY, interval=2)
    pairs = expand(saturday, saturday + HOUR, pattern, datetime(2026, 3, 31))

    assert [d.date() for d in _starts(pairs)] == [
        date(2026, 3, 7),
        date(2026, 3, 15),
        date(2026, 3, 21),
        date(2026, 3, 29),
    ]


def test_biweekly_single_day_is_fourteen_days_apart():
    pattern = RecurrencePattern(type=RecurrenceType.BIWEEKLY, days_of_week=[Weekday.MONDAY])
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 6, 30)))

    assert len(starts) > 3
    assert all(b - a == timedelta(days=14) for a, b in zip(starts, starts[1:]))


def test_biweekly_ignores_interval():
    pattern = RecurrencePattern(
        type=RecurrenceType.BIWEEKLY, days_of_week=[Weekday.MONDAY], interval=5
    )
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 4, 1)))
    assert [d.day for d in starts] == [2, 16, 30]


def test_biweekly_multiple_days_skips_alternate_week():
    pattern = RecurrencePattern(
        type=RecurrenceType.BIWEEKLY, days_of_week=[Weekday.WEDNESDAY, Weekday.MONDAY]
    )
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 3, 31)))
    assert [d.day for d in starts] == [2, 4, 16, 18, 30]


def test_weekly_without_days_repeats_on_start_weekday():
    pattern = RecurrencePattern(type=RecurrenceType.WEEKLY)
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 3, 23, 12)))
    assert [d.day for d in starts] == [2, 9, 16, 23]


def test_start_day_outside_weekday_set_is_not_emitted():
    pattern = _weekly(Weekday.TUESDAY, Weekday.THURSDAY)
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 3, 12, 23)))
    assert [d.day for d in starts] == [3, 5, 10, 12]


# ---------------------------------------------------------------------------
# Daily / monthly
# ---------------------------------------------------------------------------


def test_daily_interval():
    pattern = RecurrencePattern(type=RecurrenceType.DAILY, interval=3)
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 3, 12)))
    assert [d.day for d in starts] == [2, 5, 8, 11]


def test_daily_ignores_weekday_set():
    pattern = RecurrencePattern(type=RecurrenceType.DAILY, days_of_week=[Weekday.FRIDAY])
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 3, 4, 23)))
    assert [d.day for d in starts] == [2, 3, 4]


def test_monthly_clamps_to_month_end():
    jan31 = datetime(2026, 1, 31, 18, 0)
    pattern = RecurrencePattern(type=RecurrenceType.MONTHLY)
    starts = _starts(expand(jan31, jan31 + HOUR, pattern, datetime(2026, 4, 30)))

    assert [d.date() for d in starts] == [
        date(2026, 1, 31),
        date(2026, 2, 28),
        date(2026, 3, 28),
        date(2026, 4, 28),
    ]


def test_monthly_interval():
    pattern = RecurrencePattern(type=RecurrenceType.MONTHLY, interval=2)
    starts = _starts(expand(MON, MON + HOUR, pattern, datetime(2026, 12, 31)))
    assert [d.month for d in starts] == [3, 5, 7, 9, 11]


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------


def test_end_date_is_inclusive():
    pattern = _weekly(Weekday.MONDAY, end_date=date(2026, 3, 16))
    starts = _starts(expand(MON, MON + HOUR, pattern, FAR))
    assert [d.day for d in starts] == [2, 9, 16]


def test_end_date_and_max_occurrences_first_one_wins():
    by_count = _weekly(Weekday.MONDAY, end_date=date(2026, 12, 31), max_occurrences=2)
    by_date = _weekly(Weekday.MONDAY, end_date=date(2026, 3, 10), max_occurrences=10)

    assert len(expand(MON, MON + HOUR, by_count, FAR)) == 2
    assert len(expand(MON, MON + HOUR, by_date, FAR)) == 2


def test_zero_max_occurrences_yields_nothing():
    assert expand(MON, MON + HOUR, _weekly(Weekday.MONDAY, max_occurrences=0), FAR) == []


def test_horizon_before_start_yields_nothing():
    assert expand(MON, MON + HOUR, _weekly(Weekday.MONDAY), MON - HOUR) == []


@pytest.mark.parametrize(
    "pattern",
    [
        RecurrencePattern(type=RecurrenceType.DAILY, interval=2, max_occurrences=40),
        RecurrencePattern(type=RecurrenceType.MONTHLY, end_date=date(2026, 8, 15)),
        RecurrencePattern(
            type=RecurrenceType.WEEKLY,
            days_of_week=[Weekday.MONDAY, Weekday.THURSDAY, Weekday.SATURDAY],
            max_occurrences=25,
        ),
        RecurrencePattern(
            type=RecurrenceType.BIWEEKLY,
            days_of_week=[Weekday.TUESDAY, Weekday.FRIDAY],
            end_date=date(2026, 7, 1),
        ),
    ],
)
def test_expansion_respects_every_bound(pattern):
    horizon = datetime(2026, 6, 1)
    pairs = expand(MON, MON + timedelta(minutes=45), pattern, horizon)
    starts = _starts(pairs)

    assert starts == sorted(starts)
    assert len(set(starts)) == len(starts)
    assert all(s <= horizon for s in starts)
    if pattern.end_date:
        assert all(s.date() <= pattern.end_date for s in starts)
    if pattern.max_occurrences is not None:
        assert len(pairs) <= pattern.max_occurrences
    assert all(end - start == timedelta(minutes=45) for start, end in pairs)


def test_non_positive_interval_is_rejected():
    with pytest.raises(pydantic.ValidationError):
        RecurrencePattern(type=RecurrenceType.DAILY, interval=0)
    with pytest.raises(pydantic.ValidationError):
        RecurrencePattern(type=RecurrenceType.WEEKLY, interval=-1)
