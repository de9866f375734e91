"""Current-time capability in the practice's timezone."""

from collections.abc import Callable
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from practice_scheduler.core import config


class Clock:
    """Returns the current instant in a fixed regional timezone.

    ``now_fn`` lets callers pin the instant (tests, replays); it must return
    an aware datetime.
    """

    def __init__(self, timezone_name: str | None = None, now_fn: Callable[[], datetime] | None = None):
        self.tz = ZoneInfo(timezone_name or config.PRACTICE_TIMEZONE)
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now_fn().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)


def get_clock() -> Clock:
    return Clock()
