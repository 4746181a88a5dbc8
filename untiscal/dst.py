"""
Daylight-saving correction.

Periods are kept as naive local times. When the fetch runs while the local
clock is on daylight-saving time, every period is shifted one hour earlier,
once per run. The decision depends on the moment of the fetch only, not on
each period's own date (see DESIGN.md, "DST correction").
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from untiscal.model import Period


DST_SHIFT = timedelta(hours=1)


def is_dst(moment: Optional[datetime] = None) -> bool:
    """
    True if `moment` (default: now) is in daylight-saving time for the
    local system clock.
    """
    stamp = (moment or datetime.now()).timestamp()
    return time.localtime(stamp).tm_isdst > 0


def correct_dst(periods: list[Period], active: bool) -> list[Period]:
    """
    Return `periods` shifted one hour earlier if `active`, else unchanged.
    """
    if not active:
        return list(periods)
    return [replace(p, start=p.start - DST_SHIFT, end=p.end - DST_SHIFT) for p in periods]
