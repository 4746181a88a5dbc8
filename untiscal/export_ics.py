"""
iCalendar (.ics) export.

We convert period groups into calendar files that can be subscribed to in:
- Google Calendar
- Outlook
- Apple Calendar

Ordinary periods are written as local date-times tagged with a fixed
timezone (Europe/Berlin, whose VTIMEZONE block is embedded in every file).
Summary periods are written as all-day events with an exclusive end date.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from untiscal.errors import SerializationIOError
from untiscal.grouping import PeriodGroup
from untiscal.model import CalendarEvent, CellState, Period

log = logging.getLogger(__name__)


TZID = "Europe/Berlin"
PRODID = "-//untiscal//Untis timetable export//EN"
REFRESH_INTERVAL = "PT1H"

DATETIME_FORMAT = "%Y%m%dT%H%M%S"
DATE_FORMAT = "%Y%m%d"

# Longest line in octets before folding, see RFC 5545 section 3.1
FOLD_LIMIT = 75

STATUS_BY_CELL_STATE = {
    CellState.STANDARD.value: "CONFIRMED",
    CellState.ADDITIONAL.value: "TENTATIVE",
    CellState.CANCEL.value: "CANCELLED",
    CellState.CONFIRMED.value: "CONFIRMED",
    CellState.TENTATIVE.value: "TENTATIVE",
    CellState.CANCELLED.value: "CANCELLED",
}
DEFAULT_STATUS = "CONFIRMED"

CATEGORY_BY_LESSON_CODE = {
    "UNTIS_ADDITIONAL": "Additional",
}

RESCHEDULED_TO = "Moved to"
RESCHEDULED_FROM = "Moved from"
RESCHEDULE_FORMAT = "%d.%m.%Y %H:%M"

VTIMEZONE = [
    "BEGIN:VTIMEZONE",
    f"TZID:{TZID}",
    f"X-LIC-LOCATION:{TZID}",
    "BEGIN:DAYLIGHT",
    "TZOFFSETFROM:+0100",
    "TZOFFSETTO:+0200",
    "TZNAME:CEST",
    "DTSTART:19700329T020000",
    "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU",
    "END:DAYLIGHT",
    "BEGIN:STANDARD",
    "TZOFFSETFROM:+0200",
    "TZOFFSETTO:+0100",
    "TZNAME:CET",
    "DTSTART:19701025T030000",
    "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU",
    "END:STANDARD",
    "END:VTIMEZONE",
]


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS TEXT values.
    """
    return (
        text.replace("\\", "\\\\")
        .replace("\r\n", "\\n")
        .replace("\r", "\\n")
        .replace("\n", "\\n")
        .replace(";", "\\;")
        .replace(",", "\\,")
    )


def _fold(line: str) -> list[str]:
    """
    Split a content line into chunks of at most FOLD_LIMIT octets.
    Continuation chunks start with a single space.
    """
    chunks: list[str] = []
    current = ""
    for ch in line:
        if len((current + ch).encode("utf-8")) > FOLD_LIMIT:
            chunks.append(current)
            current = " "
        current += ch
    chunks.append(current)
    return chunks


# ---------------------------------------------------------------------------
# Period -> CalendarEvent
# ---------------------------------------------------------------------------


def event_status(cell_state: str) -> str:
    return STATUS_BY_CELL_STATE.get(cell_state, DEFAULT_STATUS)


def event_category(lesson_code: str) -> str:
    return CATEGORY_BY_LESSON_CODE.get(lesson_code, lesson_code)


def reschedule_note(period: Period) -> str:
    """
    One line describing where a rescheduled period moved to (or came from).
    Empty if the period was not rescheduled.
    """
    info = period.reschedule
    if info is None:
        return ""
    prefix = RESCHEDULED_TO if info.is_source else RESCHEDULED_FROM
    return f"{prefix} {info.start.strftime(RESCHEDULE_FORMAT)}-{info.end.strftime('%H:%M')}"


def event_description(period: Period) -> str:
    parts: list[str] = []
    for text in (period.lesson_text, period.subst_text, period.period_text):
        text = text.strip()
        if text and text not in parts:
            parts.append(text)

    note = reschedule_note(period)
    if note:
        parts.append("")
        parts.append(note)
    return "\n".join(parts)


def to_event(period: Period) -> CalendarEvent:
    """
    Build the calendar view of one period.
    """
    status = event_status(period.cell_state)
    start = period.start
    end = period.end
    if period.is_summary:
        start = datetime.combine(period.start.date(), datetime.min.time())
        end = datetime.combine(period.end.date() + timedelta(days=1), datetime.min.time())

    return CalendarEvent(
        uid=str(period.id),
        start=start,
        end=end,
        location=period.room.room.long_name,
        summary=period.course.course.long_name,
        description=event_description(period),
        status=status,
        category=event_category(period.lesson_code),
        priority=10 - period.priority,
        transparent=status != "CONFIRMED",
        all_day=period.is_summary,
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _dt_line(name: str, value: datetime, all_day: bool) -> str:
    if all_day:
        return f"{name};VALUE=DATE:{value.strftime(DATE_FORMAT)}"
    return f"{name};TZID={TZID}:{value.strftime(DATETIME_FORMAT)}"


def render_event(event: CalendarEvent, stamp: datetime) -> list[str]:
    return [
        "BEGIN:VEVENT",
        f"UID:{_ics_escape(event.uid)}",
        f"DTSTAMP:{stamp.strftime(DATETIME_FORMAT)}Z",
        _dt_line("DTSTART", event.start, event.all_day),
        _dt_line("DTEND", event.end, event.all_day),
        f"LOCATION:{_ics_escape(event.location)}",
        f"SUMMARY:{_ics_escape(event.summary)}",
        f"DESCRIPTION:{_ics_escape(event.description)}",
        f"STATUS:{event.status}",
        f"CATEGORIES:{_ics_escape(event.category)}",
        f"PRIORITY:{event.priority}",
        f"TRANSP:{'TRANSPARENT' if event.transparent else 'OPAQUE'}",
        "END:VEVENT",
    ]


def render_calendar(
    periods: Iterable[Period],
    name: str,
    stamp: Optional[datetime] = None,
) -> str:
    """
    Render periods (in the given order) into one VCALENDAR text.
    """
    if stamp is None:
        stamp = datetime.now(timezone.utc)

    lines: list[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"REFRESH-INTERVAL;VALUE=DURATION:{REFRESH_INTERVAL}",
        f"X-PUBLISHED-TTL:{REFRESH_INTERVAL}",
        f"X-WR-CALNAME:{_ics_escape(name)}",
        f"X-WR-TIMEZONE:{TZID}",
    ]
    lines.extend(VTIMEZONE)
    for period in periods:
        lines.extend(render_event(to_event(period), stamp))
    lines.append("END:VCALENDAR")

    folded: list[str] = []
    for line in lines:
        folded.extend(_fold(line))
    # ICS standard uses CRLF
    return "\r\n".join(folded) + "\r\n"


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def sanitize_group_name(name: str) -> str:
    return re.sub(r"[^0-9A-Za-z]", "_", name)


def group_output_path(base_path: str | Path, group_name: str) -> Path:
    """
    'out/timetable.ics' + 'Gemeinschaftskunde' -> 'out/timetable_Gemeinschaftskunde.ics'
    """
    base = Path(base_path)
    return base.with_name(f"{base.stem}_{sanitize_group_name(group_name)}{base.suffix}")


def write_calendar(text: str, out_path: str | Path) -> None:
    out = Path(out_path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise SerializationIOError(f"Cannot write calendar to {out}: {exc}") from exc


def export_groups(
    groups: list[PeriodGroup],
    base_path: str | Path,
    calendar_name: str,
    stamp: Optional[datetime] = None,
) -> dict[Path, int]:
    """
    Write one calendar file per group. Returns {path: number of events}.
    """
    written: dict[Path, int] = {}
    for group in groups:
        name = calendar_name if len(groups) == 1 else f"{calendar_name} {group.name}"
        path = Path(base_path) if group.consolidated else group_output_path(base_path, group.name)
        write_calendar(render_calendar(group.periods, name, stamp), path)
        log.info("Wrote %d events to %s", len(group.periods), path)
        written[path] = len(group.periods)
    return written
