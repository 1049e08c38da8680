"""
Wall clock for the schedule logic.
"""

import logging
from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from tankpod.model.clock_reading import ClockReading

log = logging.getLogger(__name__)


class SystemClock:
    """
    Reads local time in `timezone_name`. Until NTP/RTC has set the clock
    (year before `min_valid_year`) the time is treated as unavailable.
    """

    def __init__(self, timezone_name: str = "UTC", min_valid_year: int = 2024, now_fn=None):
        self.timezone_name = timezone_name
        self.min_valid_year = min_valid_year
        self._now_fn = now_fn or datetime.now
        self._tz = None
        try:
            self._tz = ZoneInfo(timezone_name)
        except Exception as e:
            log.error(f"[CLOCK] Unknown timezone '{timezone_name}' ({e}); using system local time")
        self._warned = False

    def read(self) -> Optional[ClockReading]:
        try:
            now = self._now_fn(self._tz) if self._tz is not None else self._now_fn()
        except Exception as e:
            log.error(f"[CLOCK] Failed to read clock: {e}")
            return None

        if now.year < self.min_valid_year:
            if not self._warned:
                log.warning(f"[CLOCK] Clock not synchronised ({now.isoformat()}); schedules paused")
                self._warned = True
            return None

        self._warned = False
        return ClockReading(day=now.day, hour=now.hour, minute=now.minute)
