"""
Multi-day summary events.

Calendar clients show nothing for weeks without ordinary lessons (holidays)
and some of them treat such a feed as stale. To keep a week-at-a-glance
marker in the feed, every week gets a few all-day "summary" periods:

- cancelled periods are ignored
- periods are grouped by the Monday of their week
- the first period of each week is dropped (it opens the week itself)
- the rest is cut into day groups; with gap splitting enabled a new group
  starts whenever there is at least one day without periods in between
- every day group becomes one summary period spanning its first start to
  its last end

Summary identifiers are derived from the week start, so the same week
always produces the same UIDs in the calendar file.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Iterable

from untiscal.errors import SummaryIdError
from untiscal.model import (
    SUMMARY_CODE,
    CellState,
    Course,
    CourseEntry,
    Period,
    Room,
    RoomEntry,
)


# Real period ids of the service stay far below this value
SUMMARY_ID_BASE = 1_000_000_000
MAX_ID_ATTEMPTS = 1000

WEEK_RULES = ("iso", "us")

_SENTINEL_ROOM = Room(id=0, name="", long_name="")


# ---------------------------------------------------------------------------
# Week helpers
# ---------------------------------------------------------------------------


def week_start(day: date) -> date:
    """Monday of the week `day` belongs to."""
    return day - timedelta(days=(day.isoweekday() + 6) % 7)


def week_number(day: date, rule: str = "iso") -> int:
    """
    Week number of `day`.

    rule "iso": ISO 8601 (weeks start on Monday, week 1 holds the first Thursday)
    rule "us":  weeks start on Sunday, week 1 holds January 1st
    """
    if rule == "iso":
        return day.isocalendar()[1]
    if rule == "us":
        jan1 = date(day.year, 1, 1)
        first_sunday = jan1 - timedelta(days=(jan1.weekday() + 1) % 7)
        return (day - first_sunday).days // 7 + 1
    raise ValueError(f"Unknown week rule: {rule!r}")


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def _next_id(candidate: int, taken: set[int]) -> int:
    for _ in range(MAX_ID_ATTEMPTS):
        if candidate not in taken:
            taken.add(candidate)
            return candidate
        candidate += 1
    raise SummaryIdError(f"No free summary id after {MAX_ID_ATTEMPTS} attempts")


def _summary_period(period_id: int, label: str, start: datetime, end: datetime) -> Period:
    return Period(
        id=period_id,
        start=start,
        end=end,
        room=RoomEntry(room=_SENTINEL_ROOM),
        course=CourseEntry(course=Course(id=0, name="", long_name=label)),
        lesson_code=SUMMARY_CODE,
        lesson_text=label,
        cell_state=CellState.ADDITIONAL.value,
    )


# ---------------------------------------------------------------------------
# Day groups (CORE LOGIC)
# ---------------------------------------------------------------------------


def day_groups(week: list[Period], split_gaps: bool = True) -> list[list[Period]]:
    """
    Cut one week's periods into day groups.

    `week` must hold the periods of a single week; it is sorted here and
    its first period is dropped.
    """
    remainder = sorted(week, key=lambda p: p.start)[1:]

    groups: list[list[Period]] = []
    for period in remainder:
        if groups:
            previous = groups[-1][-1]
            delta = (period.start.date() - previous.start.date()).days
            if not (split_gaps and delta > 1):
                groups[-1].append(period)
                continue
        groups.append([period])
    return groups


def synthesize_summaries(
    periods: Iterable[Period],
    split_gaps: bool = True,
    week_rule: str = "iso",
) -> list[Period]:
    """
    Create the summary periods for all weeks covered by `periods`.

    The input is not modified; the returned periods are new objects with
    identifiers that collide with none of the input periods.
    """
    periods = list(periods)
    taken = {p.id for p in periods}

    weeks: dict[date, list[Period]] = defaultdict(list)
    for period in periods:
        if period.is_cancelled or period.is_summary:
            continue
        weeks[week_start(period.start.date())].append(period)

    summaries: list[Period] = []
    for monday in sorted(weeks):
        groups = day_groups(weeks[monday], split_gaps=split_gaps)
        number = week_number(monday, week_rule)
        for index, group in enumerate(groups, start=1):
            label = f"Week {number}"
            if len(groups) > 1:
                label += f" ({index}/{len(groups)})"
            period_id = _next_id(SUMMARY_ID_BASE + monday.toordinal() * 10 + index, taken)
            summaries.append(_summary_period(period_id, label, group[0].start, group[-1].end))
    return summaries


def placeholder_summary(first_day: date, last_day: date) -> Period:
    """
    Single all-day period for a run without any periods (school holidays),
    so the calendar file never ends up without events.
    """
    label = f"No lessons {first_day.isoformat()} to {last_day.isoformat()}"
    return _summary_period(
        SUMMARY_ID_BASE,
        label,
        datetime.combine(first_day, time.min),
        datetime.combine(last_day, time.min),
    )
