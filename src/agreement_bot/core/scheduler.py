"""
Scheduler — runs the bot's periodic jobs.

Uses APScheduler for two jobs:
  - reminder dispatch: every few minutes, send reminders whose date has come
    (see `ReminderService.dispatch_due`)
  - state reaper: delete conversation states whose expiry has passed. The
    router already ignores expired rows on read, so this job only keeps the
    table small; the bot behaves the same if it never runs.

The platform adapter is responsible for:
  1. Calling `start_scheduler()` when the bot starts
  2. Providing the store whose `delete_expired` does the actual delete
  3. Providing the reminder service and a sender that delivers one message
  4. Calling `stop_scheduler()` on shutdown
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from agreement_bot.core.expiry import utc_now
from agreement_bot.core.reminder_service import MessageSender, ReminderService

logger = logging.getLogger(__name__)


class ExpiredStateStore(Protocol):
    async def delete_expired(self, now: datetime) -> int: ...


# Module-level scheduler instance
_scheduler: AsyncIOScheduler | None = None
_store: ExpiredStateStore | None = None
_reminders: ReminderService | None = None
_send: MessageSender | None = None
_clock: Callable[[], datetime] = utc_now


async def reap_expired_states(store: ExpiredStateStore, now: datetime | None = None) -> int:
    """Delete expired conversation rows once. Returns how many were removed."""
    removed = await store.delete_expired(now or _clock())
    logger.info("State reaper: %d expired conversations removed", removed)
    return removed


async def _reap_job() -> None:
    if not _store:
        return

    try:
        await reap_expired_states(_store)
    except Exception:
        logger.exception("Error in state reaper job")


async def _dispatch_job() -> None:
    if not _reminders or not _send:
        return

    try:
        await _reminders.dispatch_due(_send, _clock())
    except Exception:
        logger.exception("Error in reminder dispatch job")


def start_scheduler(
    store: ExpiredStateStore,
    interval_minutes: int = 15,
    reminders: ReminderService | None = None,
    send: MessageSender | None = None,
    reminder_interval_minutes: int = 5,
) -> AsyncIOScheduler:
    """Create and start the scheduler; the dispatch job needs both ``reminders`` and ``send``."""
    global _scheduler, _store, _reminders, _send

    _store = store
    _reminders = reminders
    _send = send
    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        _reap_job,
        "interval",
        minutes=interval_minutes,
        id="reap_expired_states",
        name="Delete expired conversation states",
        replace_existing=True,
    )

    if reminders is not None and send is not None:
        _scheduler.add_job(
            _dispatch_job,
            "interval",
            minutes=reminder_interval_minutes,
            id="dispatch_due_reminders",
            name="Send due reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    _scheduler.start()
    logger.info("Scheduler started with %d jobs", len(_scheduler.get_jobs()))
    return _scheduler


def stop_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    global _scheduler, _store, _reminders, _send
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None
    _store = None
    _reminders = None
    _send = None
