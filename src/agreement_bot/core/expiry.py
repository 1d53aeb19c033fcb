"""
Conversation expiry.

A stored state is only honoured while ``now <= expires_at``; every
accepted answer pushes the deadline forward by the TTL. Rows past their
deadline are simply ignored here. Physically removing them is the
scheduler's job and is not needed for correctness.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from agreement_bot.core.ports import ConversationRecord

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExpiryPolicy:
    def __init__(
        self,
        ttl_minutes: int = 30,
        clock: Clock = utc_now,
        timezone_name: str = "Europe/Istanbul",
    ) -> None:
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock
        self._tz = ZoneInfo(timezone_name)

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        """Calendar date in the bot's timezone, used for "not in the past" checks."""
        return self.now().astimezone(self._tz).date()

    def next_expiry(self) -> datetime:
        return self.now() + self.ttl

    def is_expired(self, record: ConversationRecord) -> bool:
        return self.now() > record.expires_at

    def active(self, record: ConversationRecord | None) -> ConversationRecord | None:
        """The record if it is still live, else None."""
        if record is None or self.is_expired(record):
            return None
        return record
