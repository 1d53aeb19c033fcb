"""
Core service for browsing and deleting saved agreements.

Backs the /list command and the ``agr:`` buttons it shows: one message
per agreement with a details and a delete button, a detail view with the
agreement's fields, its upcoming reminders and the edit buttons, and a
delete confirmation. Deleting an agreement removes its reminders too.

These buttons carry no conversation state: every press re-reads the
agreement and checks that it belongs to the presser.

This service is called by platform adapters but never imports
platform-specific code.
"""

import logging
import re
from functools import partial

from agreement_bot.adapters.base import ButtonOption
from agreement_bot.core.errors import PersistenceError
from agreement_bot.core.outcomes import ActionReply
from agreement_bot.core.ports import (
    AgreementRepository,
    AgreementSnapshot,
    ErrorReporter,
    Localizer,
    ReminderSnapshot,
)
from agreement_bot.core.prompts import Buttons, Prompt, Translator, main_menu_rows
from agreement_bot.core.states import AGREEMENT_TOKEN_PREFIX, EDIT_TOKEN_PREFIX, TOGGLE_FIELDS
from agreement_bot.core.validators import format_date

logger = logging.getLogger(__name__)

# Upcoming reminders listed on the detail view
UPCOMING_SHOWN = 10

# Edit buttons per agreement type, in display order
EDIT_BUTTONS = {
    "rent": ("title", "amount", "due_day", "monthly", "timing", "yearly"),
    "custom": ("title", "description"),
}

_ID_RE = re.compile(r"[0-9]+")


class AgreementService:
    def __init__(
        self,
        repository: AgreementRepository,
        localize: Localizer,
        reporter: ErrorReporter,
        default_locale: str = "tr",
    ) -> None:
        self._repo = repository
        self._localize = localize
        self._reporter = reporter
        self.default_locale = default_locale

    # ── Commands ─────────────────────────────────────────────

    async def list_agreements(self, user_id: int, locale: str | None = None) -> list[Prompt]:
        """A header plus one message per agreement, or the main menu when there are none."""
        t = self._translator(locale)
        try:
            agreements = await self._repo.list_agreements(user_id)
        except PersistenceError as e:
            await self._report("list_agreements", e, user_id, None)
            return [Prompt(t("errors.action_failed"))]

        if not agreements:
            return [Prompt(t("list.empty"), main_menu_rows(t))]
        return [Prompt(t("list.header"))] + [list_item(agreement, t) for agreement in agreements]

    # ── Buttons ──────────────────────────────────────────────

    async def on_callback(self, user_id: int, locale: str | None, token: str) -> ActionReply:
        """Dispatch ``agr:<action>:<agreement_id>``."""
        action, _, raw_id = token.removeprefix(AGREEMENT_TOKEN_PREFIX).partition(":")
        handlers = {
            "view": self.view,
            "delete": self.ask_delete,
            "delete_confirm": self.delete,
        }
        handler = handlers.get(action)
        if handler is None or not _ID_RE.fullmatch(raw_id):
            return ActionReply(notice=self._translator(locale)("validation.use_buttons"))
        return await handler(user_id, int(raw_id), locale)

    async def view(self, user_id: int, agreement_id: int, locale: str | None = None) -> ActionReply:
        t = self._translator(locale)
        try:
            agreement = await self._owned(user_id, agreement_id)
            reminders = await self._repo.list_reminders(agreement_id) if agreement else []
        except PersistenceError as e:
            return await self._fail("view_agreement", e, user_id, agreement_id, t)
        if agreement is None:
            return ActionReply(notice=t("detail.not_found"))
        return ActionReply(prompt=detail(agreement, reminders, t))

    async def ask_delete(self, user_id: int, agreement_id: int, locale: str | None = None) -> ActionReply:
        t = self._translator(locale)
        try:
            agreement = await self._owned(user_id, agreement_id)
            reminders = await self._repo.list_reminders(agreement_id) if agreement else []
        except PersistenceError as e:
            return await self._fail("view_agreement", e, user_id, agreement_id, t)
        if agreement is None:
            return ActionReply(notice=t("detail.not_found"))

        return ActionReply(prompt=Prompt(t("detail.delete_confirm", agreement.title, len(reminders)), [
            [ButtonOption(label=t("detail.delete_confirm_button"),
                          callback_data=f"{AGREEMENT_TOKEN_PREFIX}delete_confirm:{agreement.id}")],
            [ButtonOption(label=t("detail.back_button"),
                          callback_data=f"{AGREEMENT_TOKEN_PREFIX}view:{agreement.id}")],
        ]))

    async def delete(self, user_id: int, agreement_id: int, locale: str | None = None) -> ActionReply:
        """Delete an agreement the user owns together with all of its reminders."""
        t = self._translator(locale)
        try:
            agreement = await self._owned(user_id, agreement_id)
            deleted = agreement is not None and await self._repo.delete_agreement(agreement_id, user_id)
        except PersistenceError as e:
            return await self._fail("delete_agreement", e, user_id, agreement_id, t)
        if agreement is None or not deleted:
            return ActionReply(notice=t("detail.not_found"))

        logger.info("User %d deleted agreement %d", user_id, agreement_id)
        return ActionReply(prompt=Prompt(t("detail.deleted", agreement.title)))

    # ── Internals ────────────────────────────────────────────

    def _translator(self, locale: str | None) -> Translator:
        return partial(self._localize, locale or self.default_locale)

    async def _owned(self, user_id: int, agreement_id: int) -> AgreementSnapshot | None:
        agreement = await self._repo.get_agreement(agreement_id)
        if agreement is None or agreement.owner_telegram_id != user_id:
            return None
        return agreement

    async def _fail(
        self, event: str, error: PersistenceError, user_id: int, agreement_id: int, t: Translator,
    ) -> ActionReply:
        await self._report(event, error, user_id, agreement_id)
        return ActionReply(notice=t("errors.action_failed"))

    async def _report(self, event: str, error: PersistenceError, user_id: int, agreement_id: int | None) -> None:
        logger.error("Persistence failure in %s for user %d (agreement=%s): %s", event, user_id, agreement_id, error)
        await self._reporter.report(event, error, {"user_id": user_id, "agreement_id": agreement_id})


# ── Formatting ───────────────────────────────────────────────


def _money(value) -> str:
    return f"{value:,.2f}" if value is not None else "-"


def list_item(agreement: AgreementSnapshot, t: Translator) -> Prompt:
    if agreement.agreement_type == "rent":
        text = t("list.rent_item", agreement.title, _money(agreement.rent_amount),
                 agreement.currency or "", agreement.due_day or "-")
    else:
        text = t("list.custom_item", agreement.title, agreement.reminder_count)
    return Prompt(text, [[
        ButtonOption(label=t("detail.view_button"), callback_data=f"{AGREEMENT_TOKEN_PREFIX}view:{agreement.id}"),
        ButtonOption(label=t("detail.delete_button"), callback_data=f"{AGREEMENT_TOKEN_PREFIX}delete:{agreement.id}"),
    ]])


def detail(agreement: AgreementSnapshot, reminders: list[ReminderSnapshot], t: Translator) -> Prompt:
    """Fields, upcoming reminders and edit buttons of one agreement."""
    if agreement.agreement_type == "rent":
        lines = [
            t("detail.rent_header", agreement.title),
            "",
            t("summary.role", t(f"role.{agreement.user_role}") if agreement.user_role else "-"),
            t("summary.start_date", format_date(agreement.start_date) if agreement.start_date else "-"),
            t("summary.contract_duration", agreement.contract_duration_years or "-"),
            t("summary.amount", _money(agreement.rent_amount), agreement.currency or ""),
            t("summary.due_day", agreement.due_day or "-"),
            t("summary.monthly_reminder", _on_off(t, agreement.has_monthly_reminder)),
        ]
        if agreement.has_monthly_reminder and agreement.reminder_timing:
            lines.append(t("summary.timing", t(f"timing.{agreement.reminder_timing}")))
        lines.append(t("summary.yearly_increase", _on_off(t, agreement.has_yearly_increase_reminder)))
    else:
        lines = [t("detail.custom_header", agreement.title)]
        if agreement.description:
            lines += ["", t("summary.description", agreement.description)]

    upcoming = [r for r in reminders if r.status == "pending"]
    lines.append("")
    if upcoming:
        lines.append(t("detail.reminders_header", len(upcoming)))
        lines += [_reminder_line(r, agreement.currency) for r in upcoming[:UPCOMING_SHOWN]]
        if len(upcoming) > UPCOMING_SHOWN:
            lines.append(t("detail.more_reminders", len(upcoming) - UPCOMING_SHOWN))
    else:
        lines.append(t("detail.no_reminders"))

    return Prompt("\n".join(lines), edit_rows(agreement, t))


def edit_rows(agreement: AgreementSnapshot, t: Translator) -> Buttons:
    """One button per editable field, toggles showing their current value, then delete."""
    rows: Buttons = []
    for field in EDIT_BUTTONS.get(agreement.agreement_type, ()):
        if field in TOGGLE_FIELDS:
            current = agreement.has_monthly_reminder if field == "monthly" else agreement.has_yearly_increase_reminder
            label = t("detail.toggle_button", t(f"field.{field}"), _on_off(t, current))
        else:
            label = t("detail.edit_button", t(f"field.{field}"))
        rows.append([ButtonOption(label=label, callback_data=f"{EDIT_TOKEN_PREFIX}{agreement.id}:{field}")])
    rows.append([ButtonOption(
        label=t("detail.delete_button"), callback_data=f"{AGREEMENT_TOKEN_PREFIX}delete:{agreement.id}",
    )])
    return rows


def _on_off(t: Translator, value: bool) -> str:
    return t("detail.on") if value else t("detail.off")


def _reminder_line(reminder: ReminderSnapshot, currency: str | None) -> str:
    line = f"• {format_date(reminder.reminder_date)} · {reminder.title}"
    if reminder.amount is not None:
        line += f" · {_money(reminder.amount)} {currency or ''}".rstrip()
    return line
