"""
Shared fixtures: in-memory stand-ins for the storage ports, a controllable
clock, a recording message sender and the router and services wired to them.
"""

import copy
from dataclasses import replace as dataclass_replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from agreement_bot.adapters.base import OutgoingMessage
from agreement_bot.core.agreement_service import AgreementService
from agreement_bot.core.errors import DeliveryError, PersistenceError
from agreement_bot.core.expiry import ExpiryPolicy
from agreement_bot.core.ports import AgreementSnapshot, ConversationRecord, DueReminder, ReminderSnapshot
from agreement_bot.core.reminder_service import ReminderService
from agreement_bot.core.router import FlowRouter

USER = 1001
OTHER_USER = 2002
CHAT = "1001"

# 09:00 UTC is 12:00 in Istanbul, so "today" is the same date in both
START = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def fake_localize(locale: str, key: str, *args: object) -> str:
    """Echo the key and its arguments so assertions can match on them."""
    if not args:
        return key
    return f"{key}:{','.join(str(a) for a in args)}"


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeStore:
    def __init__(self) -> None:
        self.rows: dict[int, ConversationRecord] = {}
        self.fail_save = False
        self.fail_load = False
        self.saves = 0

    async def load_state(self, user_id):
        if self.fail_load:
            raise PersistenceError("load_state failed")
        return self.rows.get(user_id)

    async def save_state(self, user_id, state_id, payload, expires_at):
        if self.fail_save:
            raise PersistenceError("save_state failed")
        self.saves += 1
        self.rows[user_id] = ConversationRecord(user_id, state_id, copy.deepcopy(payload), expires_at)

    async def clear_state(self, user_id):
        self.rows.pop(user_id, None)

    async def delete_expired(self, now):
        expired = [uid for uid, row in self.rows.items() if row.expires_at < now]
        for uid in expired:
            del self.rows[uid]
        return len(expired)


class FakeRepository:
    def __init__(self) -> None:
        self.agreements: dict[int, AgreementSnapshot] = {}
        self.created: list[tuple] = []
        self.updates: list[tuple] = []
        self.replacements: list = []
        self.reminders: dict[int, list[ReminderSnapshot]] = {}
        self.deleted: list[int] = []
        self.fail_create = False
        self.fail_update = False
        self.fail_read = False
        self._next_id = 1

    def add(self, owner: int, agreement_type: str, title: str, **fields) -> AgreementSnapshot:
        snapshot = AgreementSnapshot(
            id=self._next_id, owner_telegram_id=owner, agreement_type=agreement_type, title=title, **fields,
        )
        self.agreements[snapshot.id] = snapshot
        self._next_id += 1
        return snapshot

    async def create_agreement_and_reminders(self, user_id, fields, reminders):
        if self.fail_create:
            raise PersistenceError("create_agreement_and_reminders failed")
        snapshot = self.add(user_id, fields["agreement_type"], fields["title"])
        self.created.append((user_id, fields, reminders))
        return snapshot.id

    async def title_taken(self, user_id, title, exclude_id=None):
        return any(
            a.owner_telegram_id == user_id and a.title == title and a.id != exclude_id
            for a in self.agreements.values()
        )

    def add_reminder(self, agreement: AgreementSnapshot, reminder_date: date, **fields) -> ReminderSnapshot:
        rows = self.reminders.setdefault(agreement.id, [])
        fields.setdefault("reminder_type", "due_day")
        fields.setdefault("title", f"Rent: {agreement.title}")
        fields.setdefault("due_date", reminder_date)
        reminder = ReminderSnapshot(
            id=sum(len(r) for r in self.reminders.values()) + 1,
            agreement_id=agreement.id,
            owner_telegram_id=agreement.owner_telegram_id,
            reminder_date=reminder_date,
            **fields,
        )
        rows.append(reminder)
        return reminder

    async def get_agreement(self, agreement_id):
        if self.fail_read:
            raise PersistenceError("get_agreement failed")
        return self.agreements.get(agreement_id)

    async def update_agreement(self, agreement_id, user_id, fields, replace=None):
        if self.fail_update:
            raise PersistenceError("update_agreement failed")
        self.updates.append((agreement_id, user_id, fields))
        if replace is not None:
            self.replacements.append(replace)
        self.agreements[agreement_id] = dataclass_replace(self.agreements[agreement_id], **fields)

    async def list_agreements(self, user_id):
        if self.fail_read:
            raise PersistenceError("list_agreements failed")
        return [
            dataclass_replace(a, reminder_count=sum(r.status == "pending" for r in self.reminders.get(a.id, [])))
            for a in self.agreements.values()
            if a.owner_telegram_id == user_id
        ]

    async def list_reminders(self, agreement_id):
        if self.fail_read:
            raise PersistenceError("list_reminders failed")
        return sorted(self.reminders.get(agreement_id, []), key=lambda r: r.reminder_date)

    async def delete_agreement(self, agreement_id, user_id):
        agreement = self.agreements.get(agreement_id)
        if agreement is None or agreement.owner_telegram_id != user_id:
            return False
        del self.agreements[agreement_id]
        self.reminders.pop(agreement_id, None)
        self.deleted.append(agreement_id)
        return True


class FakeReminderRepository:
    """Due-reminder queue; ``snoozed_until`` is kept beside the snapshots."""

    def __init__(self) -> None:
        self.items: dict[int, DueReminder] = {}
        self.snoozed_until: dict[int, datetime] = {}
        self.status_changes: list[tuple[int, str, datetime]] = []
        self.fail_read = False
        self.fail_write = False
        self._next_id = 1

    def add(
        self,
        reminder_date: date,
        owner: int = USER,
        tz_name: str = "Europe/Istanbul",
        language: str = "en",
        amount: Decimal | None = Decimal("15000.00"),
        **fields,
    ) -> DueReminder:
        fields.setdefault("reminder_type", "due_day")
        fields.setdefault("title", "Rent payment: Flat 3B")
        fields.setdefault("due_date", reminder_date)
        item = DueReminder(
            reminder=ReminderSnapshot(
                id=self._next_id,
                agreement_id=1,
                owner_telegram_id=owner,
                reminder_date=reminder_date,
                amount=amount,
                **fields,
            ),
            agreement_title="Flat 3B",
            currency="TRY",
            chat_id=owner,
            language=language,
            timezone=tz_name,
        )
        self.items[item.reminder.id] = item
        self._next_id += 1
        return item

    def status(self, reminder_id: int) -> str:
        return self.items[reminder_id].reminder.status

    async def due_reminders(self, today, now, limit=100):
        if self.fail_read:
            raise PersistenceError("due_reminders failed")
        due = [
            item for item in self.items.values()
            if item.reminder.status == "pending"
            and item.reminder.reminder_date <= today
            and self.snoozed_until.get(item.reminder.id, now) <= now
        ]
        due.sort(key=lambda item: (item.reminder.reminder_date, item.reminder.id))
        return due[:limit]

    async def get_reminder(self, reminder_id):
        if self.fail_read:
            raise PersistenceError("get_reminder failed")
        item = self.items.get(reminder_id)
        return item.reminder if item else None

    async def set_reminder_status(self, reminder_id, status, at):
        if self.fail_write:
            raise PersistenceError("set_reminder_status failed")
        self.status_changes.append((reminder_id, status, at))
        self._patch(reminder_id, status=status)

    async def snooze_reminder(self, reminder_id, until):
        if self.fail_write:
            raise PersistenceError("snooze_reminder failed")
        self.snoozed_until[reminder_id] = until
        count = self.items[reminder_id].reminder.snooze_count
        self._patch(reminder_id, status="pending", snooze_count=count + 1)

    def _patch(self, reminder_id: int, **fields) -> None:
        item = self.items[reminder_id]
        self.items[reminder_id] = dataclass_replace(item, reminder=dataclass_replace(item.reminder, **fields))


class FakeSender:
    """Records sent messages; ``errors`` maps chat ids to the DeliveryError to raise."""

    def __init__(self) -> None:
        self.sent: list[OutgoingMessage] = []
        self.errors: dict[str, DeliveryError] = {}

    async def __call__(self, message: OutgoingMessage) -> None:
        if message.chat_id in self.errors:
            raise self.errors[message.chat_id]
        self.sent.append(message)


class FakeReporter:
    def __init__(self) -> None:
        self.events: list[tuple[str, BaseException, dict]] = []

    async def report(self, event, error, context):
        self.events.append((event, error, context))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def reporter():
    return FakeReporter()


@pytest.fixture
def router(store, repository, reporter, clock):
    return FlowRouter(
        store=store,
        repository=repository,
        localize=fake_localize,
        reporter=reporter,
        expiry=ExpiryPolicy(ttl_minutes=30, clock=clock),
        max_reminders=20,
        default_locale="en",
    )


@pytest.fixture
def reminder_repository():
    return FakeReminderRepository()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def agreement_service(repository, reporter):
    return AgreementService(repository, fake_localize, reporter, default_locale="en")


@pytest.fixture
def reminder_service(reminder_repository, reporter, clock):
    return ReminderService(
        reminder_repository,
        fake_localize,
        reporter,
        clock=clock,
        timezone_name="Europe/Istanbul",
        default_locale="en",
    )
