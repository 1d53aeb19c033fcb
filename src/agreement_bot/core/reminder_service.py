"""
Core reminder service — platform-agnostic.

Delivers reminders whose date has come and handles the buttons on a
delivered reminder:
  - `dispatch_due` picks pending reminders due on or before the owner's
    local date, skips owners for whom it is night, builds the message and
    hands it to a sender callback, then marks the reminder sent
  - `on_callback` handles ``rem:`` buttons: done, snooze menu, snooze

A snoozed reminder goes back to pending with a ``snoozed_until`` time and
is picked up again by the next dispatch after that moment.

This module never imports platform-specific code. The adapter provides the
sender and turns platform errors into ``DeliveryError``.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import partial
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agreement_bot.adapters.base import ButtonOption, OutgoingMessage
from agreement_bot.core.errors import DeliveryError, PersistenceError
from agreement_bot.core.expiry import Clock, utc_now
from agreement_bot.core.outcomes import ActionReply
from agreement_bot.core.ports import DueReminder, ErrorReporter, Localizer, ReminderRepository, ReminderSnapshot
from agreement_bot.core.prompts import Buttons, Translator
from agreement_bot.core.states import REMINDER_TOKEN_PREFIX
from agreement_bot.core.validators import format_date
from agreement_bot.db.models import ReminderStatus

logger = logging.getLogger(__name__)

# Async callback that actually sends a message; raises DeliveryError
MessageSender = Callable[[OutgoingMessage], Awaitable[None]]

SNOOZE_DURATIONS = {
    "1h": timedelta(hours=1),
    "3h": timedelta(hours=3),
    "1d": timedelta(days=1),
    "3d": timedelta(days=3),
}
MAX_SNOOZES = 3

TYPE_EMOJI = {
    "pre_notify": "🔔",
    "due_day": "🏠",
    "yearly_increase": "📈",
    "ten_year_notice": "⏳",
    "five_year_notice": "📅",
}

_ID_RE = re.compile(r"[0-9]+")


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0      # undeliverable, marked failed
    deferred: int = 0    # quiet hours or a transient error; retried next run


class ReminderService:
    def __init__(
        self,
        repository: ReminderRepository,
        localize: Localizer,
        reporter: ErrorReporter,
        clock: Clock = utc_now,
        timezone_name: str = "Europe/Istanbul",
        send_hours: tuple[int, int] = (8, 22),
        batch_size: int = 100,
        default_locale: str = "tr",
    ) -> None:
        self._repo = repository
        self._localize = localize
        self._reporter = reporter
        self._clock = clock
        self._default_tz = ZoneInfo(timezone_name)
        self.send_hours = send_hours
        self.batch_size = batch_size
        self.default_locale = default_locale

    # ── Delivery ─────────────────────────────────────────────

    async def dispatch_due(self, send: MessageSender, now: datetime | None = None) -> DispatchReport:
        """
        Send every reminder that is due now. Raises PersistenceError when the
        due reminders cannot be read at all.
        """
        now = now or self._clock()
        # Owners may be up to a day ahead of UTC; the local date is checked per reminder
        horizon = now.date() + timedelta(days=1)
        due = await self._repo.due_reminders(horizon, now, self.batch_size)

        report = DispatchReport()
        for item in due:
            local = now.astimezone(self._zone(item.timezone))
            if item.reminder.reminder_date > local.date():
                continue
            if not self.in_send_window(local):
                report.deferred += 1
                continue
            await self._deliver(item, send, now, local.date(), report)

        if due:
            logger.info(
                "Reminder dispatch: %d sent, %d failed, %d deferred",
                report.sent, report.failed, report.deferred,
            )
        return report

    def in_send_window(self, local: datetime) -> bool:
        start, end = self.send_hours
        return start <= local.hour < end

    def compose(self, item: DueReminder, today: date) -> OutgoingMessage:
        """The message for one due reminder, with done and snooze buttons."""
        t = self._translator(item.language)
        reminder = item.reminder
        lines = [
            t("reminder.notification_title", TYPE_EMOJI.get(reminder.reminder_type, "📝")),
            "",
            t("reminder.agreement_line", item.agreement_title),
            t("reminder.reminder_line", reminder.title),
            t("reminder.due_date_line", format_date(reminder.due_date)),
        ]
        if reminder.amount is not None:
            lines.append(t("reminder.amount_line", f"{reminder.amount:,.2f}", item.currency or ""))

        days_left = (reminder.due_date - today).days
        if days_left < 0:
            lines += ["", t("reminder.overdue", -days_left)]
        elif days_left == 0:
            lines += ["", t("reminder.due_today")]
        elif days_left <= 7:
            lines += ["", t("reminder.days_left", days_left)]

        return OutgoingMessage(
            chat_id=str(item.chat_id),
            text="\n".join(lines),
            buttons=reminder_rows(t, reminder.id),
        )

    async def _deliver(
        self, item: DueReminder, send: MessageSender, now: datetime, today: date, report: DispatchReport,
    ) -> None:
        reminder_id = item.reminder.id
        try:
            await send(self.compose(item, today))
        except DeliveryError as e:
            if e.permanent:
                logger.warning("Chat %d unavailable for reminder %d: %s", item.chat_id, reminder_id, e)
                await self._set_status(reminder_id, ReminderStatus.FAILED, now)
                report.failed += 1
            else:
                logger.warning("Reminder %d not delivered, will retry: %s", reminder_id, e)
                report.deferred += 1
            return

        await self._set_status(reminder_id, ReminderStatus.SENT, now)
        report.sent += 1
        logger.info("Sent reminder %d to chat %d", reminder_id, item.chat_id)

    async def _set_status(self, reminder_id: int, status: ReminderStatus, now: datetime) -> None:
        try:
            await self._repo.set_reminder_status(reminder_id, status.value, now)
        except PersistenceError as e:
            logger.error("Failed to mark reminder %d as %s: %s", reminder_id, status.value, e)
            await self._reporter.report(
                "set_reminder_status", e, {"reminder_id": reminder_id, "status": status.value},
            )

    # ── Buttons ──────────────────────────────────────────────

    async def on_callback(self, user_id: int, locale: str | None, token: str) -> ActionReply:
        """Dispatch ``rem:done:<id>``, ``rem:snooze:<id>``, ``rem:menu:<id>`` and ``rem:snooze_<dur>:<id>``."""
        t = self._translator(locale)
        action, _, raw_id = token.removeprefix(REMINDER_TOKEN_PREFIX).partition(":")
        duration = action.removeprefix("snooze_") if action.startswith("snooze_") else None
        known = action in ("done", "snooze", "menu") or duration in SNOOZE_DURATIONS
        if not known or not _ID_RE.fullmatch(raw_id):
            return ActionReply(notice=t("validation.use_buttons"))
        reminder_id = int(raw_id)

        try:
            reminder = await self._owned(user_id, reminder_id)
        except PersistenceError as e:
            return await self._fail("get_reminder", e, user_id, reminder_id, t)
        if reminder is None:
            return ActionReply(notice=t("reminder.not_found"), clear_buttons=True)

        if action == "snooze":
            return ActionReply(buttons=snooze_rows(t, reminder_id))
        if action == "menu":
            return ActionReply(buttons=reminder_rows(t, reminder_id))
        if action == "done":
            return await self._mark_done(user_id, reminder, t)
        return await self._snooze(user_id, reminder, SNOOZE_DURATIONS[duration], t)

    async def _mark_done(self, user_id: int, reminder: ReminderSnapshot, t: Translator) -> ActionReply:
        try:
            await self._repo.set_reminder_status(reminder.id, ReminderStatus.ACKNOWLEDGED.value, self._clock())
        except PersistenceError as e:
            return await self._fail("mark_reminder_done", e, user_id, reminder.id, t)
        logger.info("User %d marked reminder %d as done", user_id, reminder.id)
        return ActionReply(notice=t("reminder.marked_done"), clear_buttons=True)

    async def _snooze(self, user_id: int, reminder: ReminderSnapshot, delay: timedelta, t: Translator) -> ActionReply:
        if reminder.snooze_count >= MAX_SNOOZES:
            return ActionReply(notice=t("reminder.snooze_limit", MAX_SNOOZES), buttons=reminder_rows(t, reminder.id))
        until = self._clock() + delay
        try:
            await self._repo.snooze_reminder(reminder.id, until)
        except PersistenceError as e:
            return await self._fail("snooze_reminder", e, user_id, reminder.id, t)
        logger.info("User %d snoozed reminder %d until %s", user_id, reminder.id, until.isoformat())
        shown = until.astimezone(self._default_tz).strftime("%d.%m.%Y %H:%M")
        return ActionReply(notice=t("reminder.snoozed", shown), clear_buttons=True)

    # ── Internals ────────────────────────────────────────────

    def _translator(self, locale: str | None) -> Translator:
        return partial(self._localize, locale or self.default_locale)

    def _zone(self, name: str | None) -> ZoneInfo:
        if not name:
            return self._default_tz
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using %s", name, self._default_tz.key)
            return self._default_tz

    async def _owned(self, user_id: int, reminder_id: int) -> ReminderSnapshot | None:
        reminder = await self._repo.get_reminder(reminder_id)
        if reminder is None or reminder.owner_telegram_id != user_id:
            return None
        return reminder

    async def _fail(
        self, event: str, error: PersistenceError, user_id: int, reminder_id: int, t: Translator,
    ) -> ActionReply:
        logger.error("Persistence failure in %s for user %d (reminder=%d): %s", event, user_id, reminder_id, error)
        await self._reporter.report(event, error, {"user_id": user_id, "reminder_id": reminder_id})
        return ActionReply(notice=t("errors.action_failed"))


# ── Keyboards ────────────────────────────────────────────────


def reminder_rows(t: Translator, reminder_id: int) -> Buttons:
    return [[
        ButtonOption(label=t("reminder.done_button"), callback_data=f"{REMINDER_TOKEN_PREFIX}done:{reminder_id}"),
        ButtonOption(label=t("reminder.snooze_button"), callback_data=f"{REMINDER_TOKEN_PREFIX}snooze:{reminder_id}"),
    ]]


def snooze_rows(t: Translator, reminder_id: int) -> Buttons:
    """Snooze durations two per row, then back to done / snooze."""
    buttons = [
        ButtonOption(label=t(f"reminder.snooze_{code}"), callback_data=f"{REMINDER_TOKEN_PREFIX}snooze_{code}:{reminder_id}")
        for code in SNOOZE_DURATIONS
    ]
    rows = [buttons[i:i + 2] for i in range(0, len(buttons), 2)]
    rows.append([ButtonOption(label=t("reminder.back_button"), callback_data=f"{REMINDER_TOKEN_PREFIX}menu:{reminder_id}")])
    return rows
