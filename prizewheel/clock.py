"""Reference-day clock.

Every daily rule in the campaign (spin quota, bonus grant, claim
idempotency) asks this one object what "today" is, so a participant's day
always rolls over at the same instant no matter which process or server
handles the request.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from .config import REFERENCE_UTC_OFFSET_HOURS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReferenceClock:
    def __init__(
        self,
        utc_offset_hours: int = REFERENCE_UTC_OFFSET_HOURS,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.tz = timezone(timedelta(hours=utc_offset_hours))
        self._now_fn = now_fn or utcnow

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        now = self._now_fn()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def today(self) -> date:
        """Calendar date at the reference offset."""
        return self.now().astimezone(self.tz).date()
