"""
Incremental update from a previously generated calendar file.

The fetch window only covers a few weeks. To keep older lessons in the
subscribed calendar, the previous output file is read back and its events
are merged with the freshly fetched periods:

- every VEVENT block becomes one CalendarEvent, then one Period
- summary events are never carried over (they are regenerated every run)
- location/summary texts are resolved against the ReferenceCatalog by
  long name, so the catalog must be filled by the fetch first
- fresh periods always win over previous periods with the same id
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Optional

import icalendar

from untiscal.catalog import ReferenceCatalog
from untiscal.errors import CatalogError, ParseError
from untiscal.export_ics import (
    CATEGORY_BY_LESSON_CODE,
    RESCHEDULE_FORMAT,
    RESCHEDULED_FROM,
    RESCHEDULED_TO,
)
from untiscal.model import (
    DEFAULT_PRIORITY,
    SUMMARY_CODE,
    CalendarEvent,
    Course,
    CourseEntry,
    Period,
    RescheduleInfo,
    Room,
    RoomEntry,
)

log = logging.getLogger(__name__)


REQUIRED_FIELDS = ("UID", "DTSTART", "DTEND", "LOCATION", "SUMMARY", "DESCRIPTION", "STATUS", "CATEGORIES")

LESSON_CODE_BY_CATEGORY = {v: k for k, v in CATEGORY_BY_LESSON_CODE.items()}

_RESCHEDULE_RE = re.compile(
    rf"^({re.escape(RESCHEDULED_TO)}|{re.escape(RESCHEDULED_FROM)}) "
    r"(\d{2}\.\d{2}\.\d{4} \d{2}:\d{2})-(\d{2}:\d{2})$"
)


# ---------------------------------------------------------------------------
# Reading the file
# ---------------------------------------------------------------------------


def load_calendar(path: str | Path) -> Optional[str]:
    """
    Read a previous calendar file.

    Returns None if the file does not exist (nothing to merge). Raises
    ParseError if the VCALENDAR wrapper markers are missing or repeated.
    """
    p = Path(path)
    if not p.exists():
        log.info("No previous calendar at %s, nothing to merge", p)
        return None

    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"Cannot read previous calendar {p}: {exc}") from exc

    lines = [line.strip() for line in text.splitlines()]
    for marker in ("BEGIN:VCALENDAR", "END:VCALENDAR"):
        if lines.count(marker) != 1:
            raise ParseError(f"{p}: expected exactly one {marker} line")
    return text


def _lines(text: str) -> list[str]:
    # only CRLF/LF end a content line, a stray CR stays part of the value
    return re.split(r"\r?\n", text)


def event_blocks(text: str) -> list[list[str]]:
    """
    Split calendar text into the raw content lines of each VEVENT block.

    A BEGIN:VEVENT inside an open block, an END:VEVENT without an open
    block, or a block that is never closed raises ParseError.
    """
    blocks: list[list[str]] = []
    current: Optional[list[str]] = None

    for number, line in enumerate(_lines(text), start=1):
        # folded continuation lines start with whitespace and never match
        marker = line.rstrip()
        if marker == "BEGIN:VEVENT":
            if current is not None:
                raise ParseError(f"Line {number}: nested BEGIN:VEVENT")
            current = []
        elif marker == "END:VEVENT":
            if current is None:
                raise ParseError(f"Line {number}: END:VEVENT without BEGIN:VEVENT")
            blocks.append(current)
            current = None
        elif current is not None:
            current.append(line)

    if current is not None:
        raise ParseError("Unterminated VEVENT block")
    return blocks


def _decode_block(block: list[str]) -> icalendar.Event:
    source = "\r\n".join(["BEGIN:VEVENT", *block, "END:VEVENT"]) + "\r\n"
    try:
        component = icalendar.Event.from_ical(source)
    except ValueError as exc:
        raise ParseError(f"Cannot decode event: {exc}") from exc
    if component.errors:
        name, message = component.errors[0]
        raise ParseError(f"Invalid {name} value: {message}")
    return component


def _event_time(component: icalendar.Event, name: str) -> tuple[datetime, bool]:
    value = component.decoded(name)
    if isinstance(value, datetime):
        # written as Europe/Berlin wall-clock time, kept naive like fetched periods
        return value.replace(tzinfo=None), False
    if isinstance(value, date):
        return datetime.combine(value, time.min), True
    raise ParseError(f"Invalid {name} value {value!r}")


def _categories(component: icalendar.Event) -> str:
    prop = component["CATEGORIES"]
    props = prop if isinstance(prop, list) else [prop]
    return ",".join(str(cat) for p in props for cat in p.cats)


def parse_event(block: list[str]) -> CalendarEvent:
    """
    Rebuild one CalendarEvent from the content lines of a VEVENT block.
    """
    component = _decode_block(block)
    missing = [f for f in REQUIRED_FIELDS if f not in component]
    if missing:
        raise ParseError(f"Event is missing {', '.join(missing)}")

    uid = str(component["UID"])
    start, all_day = _event_time(component, "DTSTART")
    end, _ = _event_time(component, "DTEND")

    if "PRIORITY" in component:
        priority = int(component["PRIORITY"])
    else:
        log.warning("Event %s has no PRIORITY, using %d", uid, DEFAULT_PRIORITY)
        priority = DEFAULT_PRIORITY

    if "TRANSP" in component:
        transparent = str(component["TRANSP"]).strip().upper() == "TRANSPARENT"
    else:
        log.warning("Event %s has no TRANSP, assuming OPAQUE", uid)
        transparent = False

    return CalendarEvent(
        uid=uid,
        start=start,
        end=end,
        location=str(component["LOCATION"]),
        summary=str(component["SUMMARY"]),
        description=str(component["DESCRIPTION"]),
        status=str(component["STATUS"]).strip().upper(),
        category=_categories(component),
        priority=priority,
        transparent=transparent,
        all_day=all_day,
    )


def parse_events(text: str) -> list[CalendarEvent]:
    return [parse_event(block) for block in event_blocks(text)]


# ---------------------------------------------------------------------------
# CalendarEvent -> Period
# ---------------------------------------------------------------------------


def _split_description(description: str) -> tuple[str, Optional[RescheduleInfo]]:
    """
    Separate the reschedule note appended by the exporter from the text.
    """
    lines = description.split("\n")
    match = _RESCHEDULE_RE.match(lines[-1].strip())
    if not match:
        return description, None

    start = datetime.strptime(match.group(2), RESCHEDULE_FORMAT)
    end_clock = datetime.strptime(match.group(3), "%H:%M").time()
    info = RescheduleInfo(
        start=start,
        end=datetime.combine(start.date(), end_clock),
        is_source=match.group(1) == RESCHEDULED_TO,
    )
    return "\n".join(lines[:-1]).rstrip("\n"), info


def to_period(event: CalendarEvent, catalog: ReferenceCatalog) -> Period:
    """
    Rebuild a Period from a previously written event.
    """
    try:
        period_id = int(event.uid)
    except ValueError as exc:
        raise ParseError(f"Event UID {event.uid!r} is not a period id") from exc

    try:
        room = catalog.resolve_by_long_name(Room, event.location)
        course = catalog.resolve_by_long_name(Course, event.summary)
    except CatalogError as exc:
        raise ParseError(f"Event {event.uid}: {exc}") from exc

    text, reschedule = _split_description(event.description)
    end = event.end - timedelta(days=1) if event.all_day else event.end

    return Period(
        id=period_id,
        start=event.start,
        end=end,
        room=RoomEntry(room=room),
        course=CourseEntry(course=course),
        lesson_code=LESSON_CODE_BY_CATEGORY.get(event.category, event.category),
        period_text=text,
        cell_state=event.status,
        priority=10 - event.priority,
        is_cancelled=event.status == "CANCELLED",
        reschedule=reschedule,
        pre_exist=True,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def previous_periods(text: str, catalog: ReferenceCatalog) -> list[Period]:
    """
    All non-summary periods of a previously generated calendar text.
    """
    periods: list[Period] = []
    for event in parse_events(text):
        if event.category == SUMMARY_CODE:
            continue
        periods.append(to_period(event, catalog))
    return periods


def merge_periods(previous: list[Period], fresh: list[Period]) -> list[Period]:
    """
    Previous periods whose id is not in `fresh`, followed by `fresh`.
    """
    fresh_ids = {p.id for p in fresh}
    kept = [p for p in previous if p.id not in fresh_ids]
    log.info("Merge: kept %d of %d previous periods", len(kept), len(previous))
    return kept + list(fresh)
