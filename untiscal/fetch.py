"""
HTTP client for the WebUntis weekly timetable endpoint
(`/api/public/timetable/weekly/data`).

One GET per requested day, each returning the whole week around it. The
first failing week stops the batch; what was fetched before is kept.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

import requests

from untiscal.config import FetchSettings
from untiscal.errors import FetchError
from untiscal.parse import unwrap_payload

log = logging.getLogger(__name__)


WEEKLY_DATA_PATH = "/api/public/timetable/weekly/data"


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------


def build_session(settings: FetchSettings) -> requests.Session:
    session = requests.Session()
    session.headers.update(settings.headers())
    return session


def fetch_week(
    settings: FetchSettings,
    day: date,
    session: Optional[requests.Session] = None,
) -> dict[str, Any]:
    """
    Load the weekly timetable containing `day` and return its result data
    (the dict holding "elements" and "elementPeriods").

    Raises FetchError for transport errors, non-JSON answers and error
    responses of the service.
    """
    session = session or build_session(settings)
    url = settings.base_url.rstrip("/") + WEEKLY_DATA_PATH
    params = {
        "elementType": settings.element_type,
        "elementId": settings.element_id,
        "date": day.isoformat(),
        "formatId": settings.format_id,
    }
    if settings.school:
        params["school"] = settings.school

    try:
        resp = session.get(url, params=params, timeout=settings.timeout)
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as exc:
        raise FetchError(f"Request for {day.isoformat()} failed: {exc}") from exc
    except ValueError as exc:
        raise FetchError(f"Response for {day.isoformat()} is not JSON") from exc

    return unwrap_payload(payload)


def fetch_weeks(settings: FetchSettings, days: Iterable[date]) -> list[dict[str, Any]]:
    """
    Fetch the weeks of `days` one after another.

    The first failing week stops the batch; weeks fetched before it are
    still returned.
    """
    weeks: list[dict[str, Any]] = []
    with build_session(settings) as session:
        for day in days:
            log.info("FETCH week of %s", day.isoformat())
            try:
                weeks.append(fetch_week(settings, day, session))
            except FetchError as exc:
                log.warning("%s - skipping remaining weeks", exc)
                break
    return weeks
