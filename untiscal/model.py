"""
Central data model definitions used across the project.

This module defines the canonical structure of the timetable objects so that:
- the normalizer, the summary synthesizer, the merger and the serializer
  all share the same field names
- reference data (rooms, courses) is shared by identity, never copied per period
- timestamps are local wall-clock times without tzinfo; the timezone is only
  attached when the calendar file is written
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


# Element type discriminators used by the timetable service
COURSE_TYPE = 3
ROOM_TYPE = 4

DEFAULT_PRIORITY = 5
SUMMARY_CODE = "SUMMARY"


class CellState(str, Enum):
    """
    Cell states the calendar output knows about.

    The service sends more states than these (e.g. SUBSTITUTION); those are
    kept as plain strings on the Period and fall back to the default status.
    """

    STANDARD = "STANDARD"
    ADDITIONAL = "ADDITIONAL"
    CANCEL = "CANCEL"
    CONFIRMED = "CONFIRMED"
    TENTATIVE = "TENTATIVE"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Room:
    """
    A room as listed in the "elements" section of a weekly timetable.
    """

    id: int
    name: str
    long_name: str
    display_name: str = ""
    alternate_name: str = ""
    capacity: int = 0


@dataclass(frozen=True)
class Course:
    """
    A course (subject) as listed in the "elements" section of a weekly timetable.
    """

    id: int
    name: str
    long_name: str
    display_name: str = ""
    alternate_name: str = ""
    capacity: int = 0


ReferenceEntity = Union[Room, Course]


@dataclass(frozen=True)
class RoomEntry:
    """Per-period link to a Room plus the period-specific overlay fields."""

    room: Room
    org_id: int = 0
    missing: bool = False
    state: str = ""


@dataclass(frozen=True)
class CourseEntry:
    """Per-period link to a Course plus the period-specific overlay fields."""

    course: Course
    org_id: int = 0
    missing: bool = False
    state: str = ""


@dataclass(frozen=True)
class RescheduleInfo:
    start: datetime
    end: datetime
    is_source: bool


@dataclass
class Period:
    """
    One scheduled lesson occurrence.

    `id` is unique within one fetch batch only; merging with a previous
    calendar file relies on explicit deduplication by id.
    """

    id: int
    start: datetime
    end: datetime
    room: RoomEntry
    course: CourseEntry
    lesson_id: int = 0
    lesson_number: int = 0
    lesson_code: str = ""
    lesson_text: str = ""
    period_text: str = ""
    subst_text: str = ""
    student_group: str = ""
    code: int = 0
    cell_state: str = CellState.STANDARD.value
    priority: int = DEFAULT_PRIORITY
    is_standard: bool = False
    is_cancelled: bool = False
    is_event: bool = False
    reschedule: Optional[RescheduleInfo] = None
    room_capacity: int = 0
    student_count: int = 0
    pre_exist: bool = False

    @property
    def is_summary(self) -> bool:
        return self.lesson_code == SUMMARY_CODE


@dataclass
class CalendarEvent:
    """
    Serialization-facing view of a Period (one VEVENT).

    `start`/`end` are datetimes for ordinary periods; for all-day events only
    their date part is used and `end` is already exclusive.
    """

    uid: str
    start: datetime
    end: datetime
    location: str
    summary: str
    description: str
    status: str
    category: str
    priority: int = DEFAULT_PRIORITY
    transparent: bool = False
    all_day: bool = False
