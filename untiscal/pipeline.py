"""
One complete run: fetch -> normalize -> summaries -> DST -> merge -> group -> write.

The fetch function and the DST decision are parameters so tests (and other
callers) can run the whole pipeline without network access.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from untiscal.catalog import ReferenceCatalog
from untiscal.config import FetchSettings, RunConfig
from untiscal.dst import correct_dst, is_dst
from untiscal.errors import EmptyResultWarning
from untiscal.export_ics import export_groups
from untiscal.fetch import fetch_weeks
from untiscal.grouping import group_periods
from untiscal.merge import load_calendar, merge_periods, previous_periods
from untiscal.model import Period
from untiscal.parse import normalize_weeks
from untiscal.summaries import placeholder_summary, synthesize_summaries, week_start

log = logging.getLogger(__name__)

FetchFn = Callable[[FetchSettings, Iterable[date]], list[dict[str, Any]]]


@dataclass
class RunResult:
    periods: list[Period] = field(default_factory=list)
    written: dict[Path, int] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.written


def requested_range(days: Iterable[date]) -> tuple[date, date]:
    """
    First and last day of the weeks covered by `days` (Monday to Sunday).
    """
    days = sorted(days)
    return week_start(days[0]), week_start(days[-1]) + timedelta(days=6)


def run(
    config: RunConfig,
    fetch: FetchFn = fetch_weeks,
    dst_active: Optional[bool] = None,
    stamp: Optional[datetime] = None,
) -> RunResult:
    """
    Execute one run and write the calendar file(s).

    `dst_active` defaults to whether the fetch moment is in daylight-saving
    time for the local clock.
    """
    config.validate()

    # rejects a broken previous file before anything is fetched
    previous_text = load_calendar(config.append_path) if config.append_path else None

    fetched_at = datetime.now()
    weeks = fetch(config.fetch, config.dates)

    catalog = ReferenceCatalog(config.overrides)
    periods = normalize_weeks(weeks, catalog, config.fetch.element_id)
    log.info("Normalized %d periods (%d rooms/courses)", len(periods), len(catalog))

    placeholder: list[Period] = []
    if not periods:
        first_day, last_day = requested_range(config.dates)
        warnings.warn(
            f"No periods between {first_day.isoformat()} and {last_day.isoformat()}",
            EmptyResultWarning,
            stacklevel=2,
        )
        if config.skip_summaries:
            return RunResult()
        placeholder = [placeholder_summary(first_day, last_day)]
        summaries = []
    elif config.skip_summaries:
        summaries = []
    else:
        summaries = synthesize_summaries(
            periods,
            split_gaps=not config.skip_gap_split,
            week_rule=config.week_rule,
        )
    log.info("Synthesized %d summary events", len(summaries) + len(placeholder))

    if dst_active is None:
        dst_active = is_dst(fetched_at)
    # the placeholder spans calendar days, not fetched wall-clock times
    periods = correct_dst(periods + summaries, dst_active) + placeholder

    if previous_text is not None:
        periods = merge_periods(previous_periods(previous_text, catalog), periods)

    periods.sort(key=lambda p: p.start)

    groups = group_periods(
        periods,
        by_course=config.split_by_course,
        overrides=config.overrides if config.split_by_overrides else None,
        all_formats=config.all_formats,
    )
    written = export_groups(groups, config.output, config.calendar_name, stamp)
    return RunResult(periods=periods, written=written)
