from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.clock import ensure_utc


@dataclass(frozen=True, slots=True)
class WeekWindow:
    """Half-open window [start, end_exclusive) in UTC."""

    start: datetime
    end_exclusive: datetime

    @property
    def end(self) -> datetime:
        # Sunday 23:59:59.999999 local time, the last instant inside the window.
        return self.end_exclusive - timedelta(microseconds=1)

    def contains(self, value: datetime) -> bool:
        value = ensure_utc(value)
        return self.start <= value < self.end_exclusive


def week_window(now: datetime, tz_name: str) -> WeekWindow:
    """Monday 00:00 to the following Monday 00:00 in ``tz_name``, containing ``now``."""

    tz = ZoneInfo(tz_name)
    local_now = ensure_utc(now).astimezone(tz)
    monday = local_now.date() - timedelta(days=local_now.weekday())
    start_local = datetime.combine(monday, time.min, tzinfo=tz)
    end_local = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=tz)
    return WeekWindow(start=start_local.astimezone(timezone.utc), end_exclusive=end_local.astimezone(timezone.utc))
