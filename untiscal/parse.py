"""
Parsing (raw timetable JSON -> Period objects).

- Unwraps one weekly response of the timetable service
- Feeds its "elements" list into the ReferenceCatalog
- Converts EACH period record into exactly ONE Period

Important rules:
- 1 raw period record = 1 Period
- Bad data is never guessed: an unparsable date/time or an unresolvable
  room/course reference raises MalformedRecordError and aborts the run
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from untiscal.catalog import ReferenceCatalog
from untiscal.errors import CatalogError, FetchError, MalformedRecordError
from untiscal.model import (
    COURSE_TYPE,
    DEFAULT_PRIORITY,
    ROOM_TYPE,
    CellState,
    Course,
    CourseEntry,
    Period,
    RescheduleInfo,
    Room,
    RoomEntry,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


def unwrap_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Return the result data of one weekly response.

    The service wraps everything in {"data": {"error": ..., "result": {"data": ...}}}.
    A present error facet raises FetchError.
    """
    body = payload.get("data", payload) if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        raise FetchError("Unexpected response shape (no JSON object)")

    error = body.get("error")
    if error:
        raise FetchError(f"Service reported an error: {error}")

    result = body.get("result")
    if not isinstance(result, dict):
        raise FetchError("Response carries no result")

    data = result.get("data", result)
    return data if isinstance(data, dict) else {}


def week_periods(data: dict[str, Any], element_id: int) -> list[dict[str, Any]]:
    """
    Raw period records of one element (class, teacher, student...) in one week.
    """
    periods = data.get("elementPeriods") or {}
    return list(periods.get(str(element_id)) or periods.get(element_id) or [])


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def parse_local_datetime(date_value: Any, time_value: Any) -> datetime:
    """
    Combine 'yyyyMMdd' and 'HHmm' into one naive local datetime.

    The service sends both as strings or as integers (800 for 08:00), so the
    time is zero padded before parsing. Raises ValueError for bad input.
    """
    day = str(date_value).strip()
    clock = str(time_value).strip().zfill(4)
    if len(day) != 8 or len(clock) != 4:
        raise ValueError(f"Invalid date/time: {date_value!r} {time_value!r}")
    return datetime.strptime(day + clock, "%Y%m%d%H%M")


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _single_element(record: dict[str, Any], element_type: int) -> dict[str, Any]:
    matches = [e for e in record.get("elements") or [] if e.get("type") == element_type]
    if len(matches) != 1:
        kind = "room" if element_type == ROOM_TYPE else "course"
        raise MalformedRecordError(f"Period {record.get('id')}: expected exactly one {kind}, got {len(matches)}", record)
    return matches[0]


def _room_entry(record: dict[str, Any], catalog: ReferenceCatalog) -> RoomEntry:
    element = _single_element(record, ROOM_TYPE)
    try:
        room = catalog.resolve(Room, int(element["id"]))
    except CatalogError as exc:
        raise MalformedRecordError(f"Period {record.get('id')}: {exc}", record) from exc
    return RoomEntry(
        room=room,
        org_id=_int(element.get("orgId")),
        missing=bool(element.get("missing")),
        state=_text(element.get("state")),
    )


def _course_entry(record: dict[str, Any], catalog: ReferenceCatalog) -> CourseEntry:
    element = _single_element(record, COURSE_TYPE)
    try:
        course = catalog.resolve(Course, int(element["id"]))
    except CatalogError as exc:
        raise MalformedRecordError(f"Period {record.get('id')}: {exc}", record) from exc
    return CourseEntry(
        course=course,
        org_id=_int(element.get("orgId")),
        missing=bool(element.get("missing")),
        state=_text(element.get("state")),
    )


def _reschedule(raw: Optional[dict[str, Any]]) -> Optional[RescheduleInfo]:
    if not raw:
        return None
    return RescheduleInfo(
        start=parse_local_datetime(raw["date"], raw["startTime"]),
        end=parse_local_datetime(raw["date"], raw["endTime"]),
        is_source=bool(raw.get("isSource")),
    )


# ---------------------------------------------------------------------------
# Period construction (CORE LOGIC)
# ---------------------------------------------------------------------------


def build_period(
    record: dict[str, Any],
    room: RoomEntry,
    course: CourseEntry,
    end: Optional[datetime] = None,
) -> Period:
    """
    Build a Period from a raw record and already resolved reference links.

    `end` overrides the record's endTime with an already resolved instant
    (used for synthesized periods that span several days).
    """
    try:
        start = parse_local_datetime(record["date"], record["startTime"])
        if end is None:
            end = parse_local_datetime(record["date"], record["endTime"])
        reschedule = _reschedule(record.get("rescheduleInfo"))
        flags = record.get("is") or {}
        cell_state = _text(record.get("cellState")) or CellState.STANDARD.value

        period = Period(
            id=int(record["id"]),
            start=start,
            end=end,
            room=room,
            course=course,
            lesson_id=_int(record.get("lessonId")),
            lesson_number=_int(record.get("lessonNumber")),
            lesson_code=_text(record.get("lessonCode")),
            lesson_text=_text(record.get("lessonText")),
            period_text=_text(record.get("periodText")),
            subst_text=_text(record.get("substText")),
            student_group=_text(record.get("studentGroup")),
            code=_int(record.get("code")),
            cell_state=cell_state,
            priority=_int(record.get("priority"), DEFAULT_PRIORITY),
            is_standard=bool(flags.get("standard")),
            is_cancelled=bool(flags.get("cancelled")) or cell_state == CellState.CANCEL.value,
            is_event=bool(flags.get("event")),
            reschedule=reschedule,
            room_capacity=_int(record.get("roomCapacity")),
            student_count=_int(record.get("studentCount")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedRecordError(f"Period {record.get('id')}: {exc}", record) from exc

    if period.end < period.start:
        raise MalformedRecordError(f"Period {period.id}: ends before it starts", record)
    return period


def normalize_period(record: dict[str, Any], catalog: ReferenceCatalog) -> Period:
    """
    Convert exactly one raw period record into one Period.
    """
    return build_period(record, _room_entry(record, catalog), _course_entry(record, catalog))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_weeks(
    weeks: Iterable[dict[str, Any]],
    catalog: ReferenceCatalog,
    element_id: int,
) -> list[Period]:
    """
    Normalize the unwrapped result data of several weeks, in order.

    Each week's elements are added to the catalog before its periods are
    resolved, so references into earlier weeks also resolve.
    """
    periods: list[Period] = []
    for data in weeks:
        added = catalog.add_elements(data.get("elements") or [])
        records = week_periods(data, element_id)
        log.debug("Week: %d new reference entities, %d periods", added, len(records))
        for record in records:
            periods.append(normalize_period(record, catalog))
    return periods
