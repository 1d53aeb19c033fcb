"""
Interfaces the conversation engine consumes.

The engine only talks to storage, translation and operator alerting
through these protocols. Production implementations live in
``agreement_bot.db.store``, ``agreement_bot.i18n.catalog`` and
``agreement_bot.services.alerts``; tests pass in-memory fakes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol


@dataclass(frozen=True)
class ConversationRecord:
    """One user's stored conversation position."""

    user_id: int
    state_id: str
    payload: dict[str, Any]
    expires_at: datetime


@dataclass(frozen=True)
class AgreementSnapshot:
    """Read-only view of an agreement, enough to authorize, display and edit it."""

    id: int
    owner_telegram_id: int
    agreement_type: str
    title: str
    currency: str | None = None
    rent_amount: Decimal | None = None
    due_day: int | None = None
    description: str | None = None
    user_role: str | None = None
    start_date: date | None = None
    contract_duration_years: int | None = None
    has_monthly_reminder: bool = False
    reminder_timing: str | None = None
    has_yearly_increase_reminder: bool = False
    reminder_count: int = 0


@dataclass(frozen=True)
class ReminderSpec:
    """A reminder row to create alongside an agreement."""

    reminder_type: str   # pre_notify | due_day | yearly_increase | ten_year_notice | five_year_notice
    title: str
    due_date: date
    reminder_date: date
    amount: Decimal | None = None


@dataclass(frozen=True)
class ReminderReplacement:
    """
    Swap one reminder series of an agreement.

    Pending reminders of ``reminder_types`` dated after ``after`` are removed
    and ``reminders`` are added in their place. Sent and acknowledged rows
    stay.
    """

    reminder_types: tuple[str, ...]
    after: date
    reminders: list[ReminderSpec] = field(default_factory=list)


@dataclass(frozen=True)
class ReminderSnapshot:
    id: int
    agreement_id: int
    owner_telegram_id: int
    reminder_type: str
    title: str
    due_date: date
    reminder_date: date
    amount: Decimal | None = None
    status: str = "pending"
    snooze_count: int = 0


@dataclass(frozen=True)
class DueReminder:
    """A reminder ready to go out, with everything needed to deliver it."""

    reminder: ReminderSnapshot
    agreement_title: str
    currency: str | None
    chat_id: int
    language: str
    timezone: str


class StateStore(Protocol):
    async def load_state(self, user_id: int) -> ConversationRecord | None: ...

    async def save_state(
        self, user_id: int, state_id: str, payload: dict[str, Any], expires_at: datetime,
    ) -> None: ...

    async def clear_state(self, user_id: int) -> None: ...


class AgreementRepository(Protocol):
    async def create_agreement_and_reminders(
        self, user_id: int, fields: dict[str, Any], reminders: list[ReminderSpec],
    ) -> int: ...

    async def title_taken(self, user_id: int, title: str, exclude_id: int | None = None) -> bool: ...

    async def get_agreement(self, agreement_id: int) -> AgreementSnapshot | None: ...

    async def update_agreement(
        self,
        agreement_id: int,
        user_id: int,
        fields: dict[str, Any],
        replace: ReminderReplacement | None = None,
    ) -> None: ...

    async def list_agreements(self, user_id: int) -> list[AgreementSnapshot]: ...

    async def list_reminders(self, agreement_id: int) -> list[ReminderSnapshot]: ...

    async def delete_agreement(self, agreement_id: int, user_id: int) -> bool: ...


class ReminderRepository(Protocol):
    async def due_reminders(self, today: date, now: datetime, limit: int = 100) -> list[DueReminder]: ...

    async def get_reminder(self, reminder_id: int) -> ReminderSnapshot | None: ...

    async def set_reminder_status(self, reminder_id: int, status: str, at: datetime) -> None: ...

    async def snooze_reminder(self, reminder_id: int, until: datetime) -> None: ...


class Localizer(Protocol):
    def __call__(self, locale: str, key: str, *args: object) -> str: ...


class ErrorReporter(Protocol):
    async def report(self, event: str, error: BaseException, context: dict[str, Any]) -> None: ...
