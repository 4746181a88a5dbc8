"""
Splitting periods into output calendars.

Modes:
- single:     everything in one calendar named "All"
- by course:  one calendar per course short name (lesson code if there is none)
- by override bucket: one calendar per override value (first comma separated
  segment), everything else with a course lands in "Misc"

With `all_formats` the split modes additionally produce the consolidated
"All" calendar, written to the unmodified base path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from untiscal.model import Period


ALL_GROUP = "All"
MISC_GROUP = "Misc"


@dataclass
class PeriodGroup:
    name: str
    periods: list[Period] = field(default_factory=list)
    # written to the base output path instead of a per-group path
    consolidated: bool = False


def course_key(period: Period) -> str:
    return period.course.course.name or period.lesson_code


def override_key(overrides: dict[str, str]) -> Callable[[Period], str]:
    def key(period: Period) -> str:
        short_name = period.course.course.name
        if not short_name:
            return period.lesson_code
        if short_name in overrides:
            return overrides[short_name].split(",")[0].strip()
        return MISC_GROUP

    return key


def _split(periods: list[Period], key: Callable[[Period], str]) -> list[PeriodGroup]:
    groups: dict[str, PeriodGroup] = {}
    for period in periods:
        name = key(period)
        if name not in groups:
            groups[name] = PeriodGroup(name=name)
        groups[name].periods.append(period)
    return list(groups.values())


def group_periods(
    periods: Iterable[Period],
    by_course: bool = False,
    overrides: Optional[dict[str, str]] = None,
    all_formats: bool = False,
) -> list[PeriodGroup]:
    """
    Partition `periods` into output groups, keeping their order.

    `overrides` selects the override-bucket mode; `by_course` the per-course
    mode. Neither selects the single-group mode.
    """
    periods = list(periods)

    if overrides:
        groups = _split(periods, override_key(overrides))
    elif by_course:
        groups = _split(periods, course_key)
    else:
        return [PeriodGroup(name=ALL_GROUP, periods=periods, consolidated=True)]

    if all_formats:
        groups.append(PeriodGroup(name=ALL_GROUP, periods=list(periods), consolidated=True))
    return groups
