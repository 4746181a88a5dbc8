"""
Run configuration.

Everything the pipeline needs is passed in explicitly through these two
dataclasses; nothing is read from module level state. The CLI builds them
from command line arguments and environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional

from untiscal.errors import ConfigError
from untiscal.summaries import WEEK_RULES


MAX_DATES = 4

# Element types of the timetable service (who the timetable belongs to)
ELEMENT_TYPES = {
    "class": 1,
    "teacher": 2,
    "subject": 3,
    "room": 4,
    "student": 5,
}


@dataclass
class FetchSettings:
    """
    Connection parameters for the timetable service.

    `cookie` and `tenant_id` are session material obtained outside of this
    tool (browser login); they are sent as-is.
    """

    base_url: str
    element_id: int
    element_type: int = ELEMENT_TYPES["student"]
    school: str = ""
    cookie: str = ""
    tenant_id: str = ""
    format_id: int = 1
    timeout: float = 30.0

    def headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json, text/plain, */*",
            "User-Agent": "untiscal",
        }
        if self.cookie:
            headers["Cookie"] = self.cookie
        if self.tenant_id:
            headers["Tenant-Id"] = self.tenant_id
        return headers


@dataclass
class RunConfig:
    fetch: FetchSettings
    dates: list[date]
    output: Path
    skip_summaries: bool = False
    skip_gap_split: bool = False
    split_by_course: bool = False
    split_by_overrides: bool = False
    all_formats: bool = False
    overrides: dict[str, str] = field(default_factory=dict)
    append_path: Optional[Path] = None
    week_rule: str = "iso"
    calendar_name: str = "Timetable"

    def validate(self) -> None:
        """
        Raise ConfigError for inconsistent settings. Called before any
        network activity.
        """
        if not self.fetch.base_url.strip():
            raise ConfigError("A base URL is required")
        if self.fetch.element_id <= 0:
            raise ConfigError("The element id must be a positive integer")
        if not self.dates:
            raise ConfigError("At least one date is required")
        if len(self.dates) > MAX_DATES:
            raise ConfigError(f"At most {MAX_DATES} dates can be fetched per run, got {len(self.dates)}")
        if self.split_by_course and self.split_by_overrides:
            raise ConfigError("Split by course and split by overrides are mutually exclusive")
        if self.all_formats and not (self.split_by_course or self.split_by_overrides):
            raise ConfigError("All formats only makes sense together with a split mode")
        if self.split_by_overrides and not self.overrides:
            raise ConfigError("Split by overrides needs at least one override")
        if self.week_rule not in WEEK_RULES:
            raise ConfigError(f"Unknown week rule {self.week_rule!r}, expected one of {', '.join(WEEK_RULES)}")
        if not str(self.output).strip():
            raise ConfigError("An output path is required")


def parse_override(text: str) -> tuple[str, str]:
    """
    'GK=Gemeinschaftskunde' -> ('GK', 'Gemeinschaftskunde')
    """
    short, sep, long_name = text.partition("=")
    short = short.strip()
    long_name = long_name.strip()
    if not sep or not short or not long_name:
        raise ConfigError(f"Invalid override {text!r}, expected SHORT=LONG NAME")
    return short, long_name
