"""
Database repository for agreement bot operations.

All raw database queries live here. Core business logic calls these
functions instead of touching SQLAlchemy directly, keeping the layers
cleanly separated. Every function takes an open ``AsyncSession``; the
caller owns the transaction.
"""

import logging
from datetime import date, datetime
from typing import Any, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agreement_bot.core.ports import ReminderSpec
from agreement_bot.db.models import (
    Agreement,
    AgreementUser,
    ConversationState,
    Reminder,
    ReminderStatus,
    ReminderType,
)

logger = logging.getLogger(__name__)


# ── Users ────────────────────────────────────────────────────


async def get_user_by_telegram_id(
    session: AsyncSession,
    telegram_user_id: int,
) -> AgreementUser | None:
    """Find a user by their Telegram ID."""
    result = await session.execute(
        select(AgreementUser).where(AgreementUser.telegram_user_id == telegram_user_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_user(
    session: AsyncSession,
    *,
    telegram_user_id: int,
    telegram_chat_id: int | None = None,
    username: str | None = None,
    first_name: str | None = None,
    language: str | None = None,
) -> AgreementUser:
    """Fetch the user, creating the row on first contact and refreshing names."""
    user = await get_user_by_telegram_id(session, telegram_user_id)
    if user is None:
        user = AgreementUser(
            telegram_user_id=telegram_user_id,
            telegram_chat_id=telegram_chat_id or telegram_user_id,
            username=username,
            first_name=first_name,
        )
        if language:
            user.language = language
        session.add(user)
        await session.flush()
        logger.info("Created agreement user %d (id=%d)", telegram_user_id, user.id)
        return user

    if telegram_chat_id:
        user.telegram_chat_id = telegram_chat_id
    if username is not None:
        user.username = username
    if first_name is not None:
        user.first_name = first_name
    return user


async def set_user_language(
    session: AsyncSession,
    telegram_user_id: int,
    language: str,
) -> AgreementUser:
    user = await get_or_create_user(session, telegram_user_id=telegram_user_id)
    user.language = language
    await session.flush()
    logger.info("User %d switched language to %s", telegram_user_id, language)
    return user


# ── Conversation state ───────────────────────────────────────


async def get_conversation_state(
    session: AsyncSession,
    telegram_user_id: int,
) -> ConversationState | None:
    """Stored state row, expired or not. Expiry is the caller's decision."""
    result = await session.execute(
        select(ConversationState).where(ConversationState.telegram_user_id == telegram_user_id)
    )
    return result.scalar_one_or_none()


async def upsert_conversation_state(
    session: AsyncSession,
    *,
    telegram_user_id: int,
    state: str,
    state_data: dict[str, Any],
    expires_at: datetime,
) -> None:
    """Insert or overwrite the single state row for a user."""
    stmt = insert(ConversationState).values(
        telegram_user_id=telegram_user_id,
        state=state,
        state_data=state_data,
        expires_at=expires_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ConversationState.telegram_user_id],
        set_={
            "state": stmt.excluded.state,
            "state_data": stmt.excluded.state_data,
            "expires_at": stmt.excluded.expires_at,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)


async def delete_conversation_state(
    session: AsyncSession,
    telegram_user_id: int,
) -> int:
    result = await session.execute(
        delete(ConversationState).where(ConversationState.telegram_user_id == telegram_user_id)
    )
    return result.rowcount or 0


async def delete_expired_states(
    session: AsyncSession,
    now: datetime,
) -> int:
    """Remove every state row whose expiry has passed. Returns the count."""
    result = await session.execute(
        delete(ConversationState).where(ConversationState.expires_at < now)
    )
    count = result.rowcount or 0
    if count:
        logger.info("Deleted %d expired conversation states", count)
    return count


# ── Agreements ───────────────────────────────────────────────


async def create_agreement(
    session: AsyncSession,
    *,
    user_id: int,
    fields: dict[str, Any],
) -> Agreement:
    agreement = Agreement(user_id=user_id, **fields)
    session.add(agreement)
    await session.flush()  # get agreement.id without committing
    logger.info("Created %s agreement: %s (id=%d)", agreement.agreement_type, agreement.title, agreement.id)
    return agreement


async def create_reminders(
    session: AsyncSession,
    *,
    agreement_id: int,
    reminders: Sequence[ReminderSpec],
) -> list[Reminder]:
    """Bulk-create reminder rows for an agreement."""
    rows = [
        Reminder(
            agreement_id=agreement_id,
            reminder_type=ReminderType(spec.reminder_type).value,
            title=spec.title[:100],
            amount=spec.amount,
            due_date=spec.due_date,
            reminder_date=spec.reminder_date,
            status=ReminderStatus.PENDING.value,
        )
        for spec in reminders
    ]
    session.add_all(rows)
    await session.flush()
    logger.info("Created %d reminders for agreement_id=%d", len(rows), agreement_id)
    return rows


async def find_agreement_by_title(
    session: AsyncSession,
    user_id: int,
    title: str,
    exclude_id: int | None = None,
) -> Agreement | None:
    query = select(Agreement).where(Agreement.user_id == user_id, Agreement.title == title)
    if exclude_id is not None:
        query = query.where(Agreement.id != exclude_id)
    result = await session.execute(query.limit(1))
    return result.scalar_one_or_none()


async def get_agreement_with_user(
    session: AsyncSession,
    agreement_id: int,
) -> Agreement | None:
    """Load an agreement with its owner eagerly loaded."""
    result = await session.execute(
        select(Agreement)
        .where(Agreement.id == agreement_id)
        .options(selectinload(Agreement.user))
    )
    return result.scalar_one_or_none()


async def update_agreement(
    session: AsyncSession,
    agreement_id: int,
    user_id: int,
    fields: dict[str, Any],
) -> Agreement | None:
    """Patch an agreement owned by ``user_id``. Returns None if not found or not owned."""
    result = await session.execute(
        select(Agreement).where(Agreement.id == agreement_id, Agreement.user_id == user_id)
    )
    agreement = result.scalar_one_or_none()
    if agreement is None:
        return None
    for key, value in fields.items():
        setattr(agreement, key, value)
    await session.flush()
    logger.info("Updated agreement_id=%d: %s", agreement_id, ", ".join(fields))
    return agreement


async def list_user_agreements(
    session: AsyncSession,
    user_id: int,
) -> Sequence[Agreement]:
    """All agreements of a user, newest first, with reminders loaded."""
    result = await session.execute(
        select(Agreement)
        .where(Agreement.user_id == user_id)
        .options(selectinload(Agreement.reminders))
        .order_by(Agreement.created_at.desc())
    )
    return result.scalars().all()


async def delete_agreement(
    session: AsyncSession,
    agreement_id: int,
    user_id: int,
) -> bool:
    """Delete an agreement owned by ``user_id`` together with its reminders."""
    result = await session.execute(
        select(Agreement)
        .where(Agreement.id == agreement_id, Agreement.user_id == user_id)
        .options(selectinload(Agreement.reminders))
    )
    agreement = result.scalar_one_or_none()
    if agreement is None:
        return False
    reminder_count = len(agreement.reminders)
    await session.delete(agreement)
    await session.flush()
    logger.info("Deleted agreement_id=%d with %d reminders", agreement_id, reminder_count)
    return True


# ── Reminders ────────────────────────────────────────────────


async def list_agreement_reminders(
    session: AsyncSession,
    agreement_id: int,
) -> Sequence[Reminder]:
    result = await session.execute(
        select(Reminder)
        .where(Reminder.agreement_id == agreement_id)
        .order_by(Reminder.reminder_date, Reminder.id)
    )
    return result.scalars().all()


async def replace_pending_reminders(
    session: AsyncSession,
    *,
    agreement_id: int,
    reminder_types: Sequence[str],
    after: date,
    reminders: Sequence[ReminderSpec],
) -> int:
    """Drop pending reminders of the given types dated after ``after`` and add new ones."""
    result = await session.execute(
        delete(Reminder).where(
            Reminder.agreement_id == agreement_id,
            Reminder.reminder_type.in_(list(reminder_types)),
            Reminder.status == ReminderStatus.PENDING.value,
            Reminder.reminder_date > after,
        )
    )
    removed = result.rowcount or 0
    if reminders:
        await create_reminders(session, agreement_id=agreement_id, reminders=reminders)
    logger.info(
        "Replaced %d pending %s reminders with %d for agreement_id=%d",
        removed, "/".join(reminder_types), len(reminders), agreement_id,
    )
    return removed


async def get_due_reminders(
    session: AsyncSession,
    today: date,
    now: datetime,
    limit: int = 100,
) -> Sequence[tuple[Reminder, Agreement, AgreementUser]]:
    """
    Pending reminders dated on or before ``today`` whose snooze (if any) has
    run out, oldest first, with their agreement and owner.
    """
    result = await session.execute(
        select(Reminder, Agreement, AgreementUser)
        .join(Agreement, Reminder.agreement_id == Agreement.id)
        .join(AgreementUser, Agreement.user_id == AgreementUser.id)
        .where(
            Reminder.status == ReminderStatus.PENDING.value,
            Reminder.reminder_date <= today,
            or_(Reminder.snoozed_until.is_(None), Reminder.snoozed_until <= now),
        )
        .order_by(Reminder.reminder_date, Reminder.id)
        .limit(limit)
    )
    return result.tuples().all()


async def get_reminder_with_owner(
    session: AsyncSession,
    reminder_id: int,
) -> tuple[Reminder, AgreementUser] | None:
    result = await session.execute(
        select(Reminder, AgreementUser)
        .join(Agreement, Reminder.agreement_id == Agreement.id)
        .join(AgreementUser, Agreement.user_id == AgreementUser.id)
        .where(Reminder.id == reminder_id)
    )
    return result.tuples().one_or_none()


async def set_reminder_status(
    session: AsyncSession,
    reminder_id: int,
    status: ReminderStatus,
    at: datetime,
) -> Reminder | None:
    """Move a reminder to sent, acknowledged or failed, stamping the time."""
    reminder = await session.get(Reminder, reminder_id)
    if reminder is None:
        return None
    reminder.status = status.value
    if status == ReminderStatus.SENT:
        reminder.sent_at = at
    elif status == ReminderStatus.ACKNOWLEDGED:
        reminder.acknowledged_at = at
    await session.flush()
    return reminder


async def snooze_reminder(
    session: AsyncSession,
    reminder_id: int,
    until: datetime,
) -> Reminder | None:
    """Put a reminder back in the queue until ``until``."""
    reminder = await session.get(Reminder, reminder_id)
    if reminder is None:
        return None
    reminder.status = ReminderStatus.PENDING.value
    reminder.snoozed_until = until
    reminder.snooze_count = (reminder.snooze_count or 0) + 1
    await session.flush()
    logger.info("Snoozed reminder_id=%d until %s (count=%d)", reminder_id, until.isoformat(), reminder.snooze_count)
    return reminder
