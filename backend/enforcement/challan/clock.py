"""
Calendar Clock

Issue dates and "today" are calendar days in the configured timezone,
while timestamps are stored as naive UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo


class Clock:
    """Timezone-aware wall clock with an injectable time source"""

    def __init__(self, tz_name: str = "UTC", now_fn: Optional[Callable[[], datetime]] = None):
        self.tz = ZoneInfo(tz_name)
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current time in the configured timezone"""
        current = self._now_fn()
        if current.tzinfo is None:
            current = current.replace(tzinfo=self.tz)
        return current.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def to_storage(self, value: datetime) -> datetime:
        """Naive UTC for the store; naive input is local to the configured zone"""
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def from_storage(value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)

    def day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        """Storage-space [start, end) of a local calendar day"""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return self.to_storage(start), self.to_storage(end)
