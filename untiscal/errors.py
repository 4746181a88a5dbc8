"""
Exception taxonomy.

All fatal problems raised by untiscal derive from UntisCalError so the CLI
can turn them into a non-zero exit code with one except clause.

The only non-fatal case (no periods in the requested window) is reported
as a warning, not an exception.
"""

from __future__ import annotations

import json
from typing import Any


class UntisCalError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(UntisCalError):
    """Invalid run configuration, detected before any network activity."""


class FetchError(UntisCalError):
    """Transport/auth failure or an error reported by the timetable service."""


class MalformedRecordError(UntisCalError):
    """
    A raw period record could not be normalized.

    The full record is kept (and rendered into the message) so the
    offending data can be diagnosed from the log alone.
    """

    def __init__(self, message: str, record: dict[str, Any] | None = None) -> None:
        self.record = record
        if record is not None:
            dump = json.dumps(record, ensure_ascii=False, sort_keys=True, default=str)
            message = f"{message}\nRecord: {dump}"
        super().__init__(message)


class CatalogError(UntisCalError):
    """Reference lookup failed."""


class NotFoundError(CatalogError):
    pass


class AmbiguousError(CatalogError):
    pass


class ParseError(UntisCalError):
    """A previously generated calendar file could not be read back."""


class SummaryIdError(UntisCalError):
    """No free identifier was found for a synthesized summary period."""


class SerializationIOError(UntisCalError):
    """An output calendar file could not be written."""


class EmptyResultWarning(UserWarning):
    """The requested window contains no periods."""
