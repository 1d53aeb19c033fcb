"""
PostgreSQL implementations of the engine's storage ports.

Each class opens one session per call through the shared session factory
and converts any SQLAlchemy failure into ``PersistenceError`` (cause
chained) so the engine never sees driver exceptions.
"""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agreement_bot.core.errors import PersistenceError
from agreement_bot.core.ports import (
    AgreementSnapshot,
    ConversationRecord,
    DueReminder,
    ReminderReplacement,
    ReminderSnapshot,
    ReminderSpec,
)
from agreement_bot.db import repositories as repo
from agreement_bot.db.models import Agreement, Reminder, ReminderStatus
from agreement_bot.db.session import get_session

logger = logging.getLogger(__name__)

SessionScope = Callable[[], Any]


@asynccontextmanager
async def _guarded(scope: SessionScope, operation: str) -> AsyncGenerator[AsyncSession, None]:
    try:
        async with scope() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error("Database error in %s: %s", operation, e)
        raise PersistenceError(f"{operation} failed") from e


class SqlConversationStore:
    """State store backed by the agreement_conversation_states table."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._scope = session_scope

    async def load_state(self, user_id: int) -> ConversationRecord | None:
        async with _guarded(self._scope, "load_state") as session:
            row = await repo.get_conversation_state(session, user_id)
            if row is None:
                return None
            return ConversationRecord(
                user_id=row.telegram_user_id,
                state_id=row.state,
                payload=row.state_data or {},
                expires_at=row.expires_at,
            )

    async def save_state(
        self, user_id: int, state_id: str, payload: dict[str, Any], expires_at: datetime,
    ) -> None:
        async with _guarded(self._scope, "save_state") as session:
            await repo.upsert_conversation_state(
                session,
                telegram_user_id=user_id,
                state=state_id,
                state_data=payload,
                expires_at=expires_at,
            )

    async def clear_state(self, user_id: int) -> None:
        async with _guarded(self._scope, "clear_state") as session:
            await repo.delete_conversation_state(session, user_id)

    async def delete_expired(self, now: datetime) -> int:
        async with _guarded(self._scope, "delete_expired") as session:
            return await repo.delete_expired_states(session, now)


class SqlAgreementRepository:
    """Agreement repository; agreement and reminders are written in one transaction."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._scope = session_scope

    async def create_agreement_and_reminders(
        self, user_id: int, fields: dict[str, Any], reminders: list[ReminderSpec],
    ) -> int:
        async with _guarded(self._scope, "create_agreement_and_reminders") as session:
            user = await repo.get_or_create_user(session, telegram_user_id=user_id)
            agreement = await repo.create_agreement(session, user_id=user.id, fields=fields)
            await repo.create_reminders(session, agreement_id=agreement.id, reminders=reminders)
            return agreement.id

    async def title_taken(self, user_id: int, title: str, exclude_id: int | None = None) -> bool:
        async with _guarded(self._scope, "title_taken") as session:
            user = await repo.get_user_by_telegram_id(session, user_id)
            if user is None:
                return False
            existing = await repo.find_agreement_by_title(session, user.id, title, exclude_id)
            return existing is not None

    async def get_agreement(self, agreement_id: int) -> AgreementSnapshot | None:
        async with _guarded(self._scope, "get_agreement") as session:
            agreement = await repo.get_agreement_with_user(session, agreement_id)
            if agreement is None:
                return None
            return _agreement_snapshot(agreement, agreement.user.telegram_user_id)

    async def update_agreement(
        self,
        agreement_id: int,
        user_id: int,
        fields: dict[str, Any],
        replace: ReminderReplacement | None = None,
    ) -> None:
        async with _guarded(self._scope, "update_agreement") as session:
            user = await repo.get_user_by_telegram_id(session, user_id)
            updated = None
            if user is not None:
                updated = await repo.update_agreement(session, agreement_id, user.id, fields)
            if updated is None:
                raise PersistenceError(f"agreement {agreement_id} not found for user {user_id}")
            if replace is not None:
                await repo.replace_pending_reminders(
                    session,
                    agreement_id=agreement_id,
                    reminder_types=replace.reminder_types,
                    after=replace.after,
                    reminders=replace.reminders,
                )

    async def list_agreements(self, user_id: int) -> list[AgreementSnapshot]:
        async with _guarded(self._scope, "list_agreements") as session:
            user = await repo.get_user_by_telegram_id(session, user_id)
            if user is None:
                return []
            agreements = await repo.list_user_agreements(session, user.id)
            return [
                _agreement_snapshot(
                    agreement,
                    user_id,
                    reminder_count=sum(r.status == ReminderStatus.PENDING.value for r in agreement.reminders),
                )
                for agreement in agreements
            ]

    async def list_reminders(self, agreement_id: int) -> list[ReminderSnapshot]:
        async with _guarded(self._scope, "list_reminders") as session:
            agreement = await repo.get_agreement_with_user(session, agreement_id)
            if agreement is None:
                return []
            rows = await repo.list_agreement_reminders(session, agreement_id)
            return [_reminder_snapshot(row, agreement.user.telegram_user_id) for row in rows]

    async def delete_agreement(self, agreement_id: int, user_id: int) -> bool:
        async with _guarded(self._scope, "delete_agreement") as session:
            user = await repo.get_user_by_telegram_id(session, user_id)
            if user is None:
                return False
            return await repo.delete_agreement(session, agreement_id, user.id)


class SqlReminderRepository:
    """Reminder delivery queue over the reminders table."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._scope = session_scope

    async def due_reminders(self, today: date, now: datetime, limit: int = 100) -> list[DueReminder]:
        async with _guarded(self._scope, "due_reminders") as session:
            rows = await repo.get_due_reminders(session, today, now, limit)
            return [
                DueReminder(
                    reminder=_reminder_snapshot(reminder, user.telegram_user_id),
                    agreement_title=agreement.title,
                    currency=agreement.currency,
                    chat_id=user.telegram_chat_id,
                    language=user.language,
                    timezone=user.timezone,
                )
                for reminder, agreement, user in rows
            ]

    async def get_reminder(self, reminder_id: int) -> ReminderSnapshot | None:
        async with _guarded(self._scope, "get_reminder") as session:
            row = await repo.get_reminder_with_owner(session, reminder_id)
            if row is None:
                return None
            reminder, user = row
            return _reminder_snapshot(reminder, user.telegram_user_id)

    async def set_reminder_status(self, reminder_id: int, status: str, at: datetime) -> None:
        async with _guarded(self._scope, "set_reminder_status") as session:
            if await repo.set_reminder_status(session, reminder_id, ReminderStatus(status), at) is None:
                raise PersistenceError(f"reminder {reminder_id} not found")

    async def snooze_reminder(self, reminder_id: int, until: datetime) -> None:
        async with _guarded(self._scope, "snooze_reminder") as session:
            if await repo.snooze_reminder(session, reminder_id, until) is None:
                raise PersistenceError(f"reminder {reminder_id} not found")


# ── Row conversion ───────────────────────────────────────────


def _agreement_snapshot(agreement: Agreement, owner_telegram_id: int, reminder_count: int = 0) -> AgreementSnapshot:
    return AgreementSnapshot(
        id=agreement.id,
        owner_telegram_id=owner_telegram_id,
        agreement_type=agreement.agreement_type,
        title=agreement.title,
        currency=agreement.currency,
        rent_amount=agreement.rent_amount,
        due_day=agreement.due_day,
        description=agreement.description,
        user_role=agreement.user_role,
        start_date=agreement.start_date,
        contract_duration_years=agreement.contract_duration_years,
        has_monthly_reminder=bool(agreement.has_monthly_reminder),
        reminder_timing=agreement.reminder_timing,
        has_yearly_increase_reminder=bool(agreement.has_yearly_increase_reminder),
        reminder_count=reminder_count,
    )


def _reminder_snapshot(reminder: Reminder, owner_telegram_id: int) -> ReminderSnapshot:
    return ReminderSnapshot(
        id=reminder.id,
        agreement_id=reminder.agreement_id,
        owner_telegram_id=owner_telegram_id,
        reminder_type=reminder.reminder_type,
        title=reminder.title,
        due_date=reminder.due_date,
        reminder_date=reminder.reminder_date,
        amount=reminder.amount,
        status=reminder.status,
        snooze_count=reminder.snooze_count or 0,
    )
