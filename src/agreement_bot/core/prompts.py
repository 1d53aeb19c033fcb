"""
Prompt builders for every conversation step.

A prompt is the text plus optional rows of buttons shown while the engine
waits for an answer. Builders are platform-agnostic: they return
``ButtonOption`` rows that the Telegram adapter turns into an inline
keyboard. All user-visible text goes through the translator bound to the
user's locale.
"""

import calendar
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date

from agreement_bot.adapters.base import ButtonOption
from agreement_bot.core.drafts import CustomDraft, RentDraft
from agreement_bot.core.states import (
    CALENDAR_NOOP_TOKEN,
    CANCEL_TOKEN,
    MENU_CUSTOM_TOKEN,
    MENU_RENT_TOKEN,
)
from agreement_bot.core.validators import CURRENCIES, REMINDER_TIMINGS

# t(key, *args) -> text in the user's language
Translator = Callable[..., str]

Buttons = list[list[ButtonOption]]

CURRENCY_FLAGS = {"TRY": "🇹🇷", "EUR": "🇪🇺", "USD": "🇺🇸", "GBP": "🇬🇧"}


@dataclass(frozen=True)
class Prompt:
    text: str
    buttons: Buttons | None = None

    def with_error(self, message: str) -> "Prompt":
        """Same prompt annotated with a validation error on top."""
        return replace(self, text=f"⚠️ {message}\n\n{self.text}")

    def with_header(self, header: str) -> "Prompt":
        return replace(self, text=f"{header}\n\n{self.text}")


@dataclass(frozen=True)
class RenderContext:
    t: Translator
    today: date


PromptBuilder = Callable[[object, RenderContext], Prompt]


# ── Button rows ──────────────────────────────────────────────


def cancel_row(t: Translator) -> list[ButtonOption]:
    return [ButtonOption(label=t("buttons.cancel"), callback_data=CANCEL_TOKEN)]


def main_menu_rows(t: Translator) -> Buttons:
    return [
        [ButtonOption(label=t("menu.rent"), callback_data=MENU_RENT_TOKEN)],
        [ButtonOption(label=t("menu.custom"), callback_data=MENU_CUSTOM_TOKEN)],
    ]


def yes_no_rows(t: Translator, prefix: str) -> Buttons:
    return [
        [
            ButtonOption(label=t("buttons.yes"), callback_data=f"{prefix}:yes"),
            ButtonOption(label=t("buttons.no"), callback_data=f"{prefix}:no"),
        ],
        cancel_row(t),
    ]


def currency_rows(t: Translator, prefix: str) -> Buttons:
    """Currencies two per row, flag first."""
    buttons = [
        ButtonOption(label=f"{CURRENCY_FLAGS[code]} {code}", callback_data=f"{prefix}:{code}")
        for code in CURRENCIES
    ]
    return [buttons[i:i + 2] for i in range(0, len(buttons), 2)] + [cancel_row(t)]


def timing_rows(t: Translator, prefix: str) -> Buttons:
    rows = [
        [ButtonOption(label=t(f"timing.{timing}"), callback_data=f"{prefix}:{timing}")]
        for timing in REMINDER_TIMINGS
    ]
    return rows + [cancel_row(t)]


def confirm_rows(t: Translator, token: str) -> Buttons:
    return [
        [ButtonOption(label=t("buttons.confirm"), callback_data=token)],
        cancel_row(t),
    ]


def calendar_rows(t: Translator, shown: date, today: date) -> Buttons:
    """
    Month grid for the reminder date picker.

    Row 1 navigates months, row 2 holds weekday labels, then one row per
    week. Blank cells, labels and days before ``today`` are inert.
    """
    year, month = shown.year, shown.month
    header = f"{t(f'calendar.month_{month}')} {year}"
    rows: Buttons = [[
        ButtonOption(label=t("calendar.prev_month"), callback_data=f"custom:cal:prev:{year}:{month}"),
        ButtonOption(label=header, callback_data=CALENDAR_NOOP_TOKEN),
        ButtonOption(label=t("calendar.next_month"), callback_data=f"custom:cal:next:{year}:{month}"),
    ]]
    rows.append([
        ButtonOption(label=label, callback_data=CALENDAR_NOOP_TOKEN)
        for label in t("calendar.weekdays").split(",")
    ])

    for week in calendar.Calendar(firstweekday=0).monthdayscalendar(year, month):
        row = []
        for day in week:
            if day == 0 or date(year, month, day) < today:
                label = " " if day == 0 else "·"
                row.append(ButtonOption(label=label, callback_data=CALENDAR_NOOP_TOKEN))
            else:
                row.append(ButtonOption(
                    label=str(day),
                    callback_data=f"custom:cal:day:{year}:{month}:{day}",
                ))
        rows.append(row)

    rows.append(cancel_row(t))
    return rows


# ── Generic builders ─────────────────────────────────────────


def ask(key: str, *extra_rows: Callable[[Translator], list[ButtonOption]]) -> PromptBuilder:
    """Free-text question with a cancel button (plus optional extra rows)."""

    def _build(draft, ctx: RenderContext) -> Prompt:
        rows = [row(ctx.t) for row in extra_rows]
        return Prompt(ctx.t(key), rows + [cancel_row(ctx.t)])

    return _build


def skip_row(token: str) -> Callable[[Translator], list[ButtonOption]]:
    def _row(t: Translator) -> list[ButtonOption]:
        return [ButtonOption(label=t("buttons.skip"), callback_data=token)]

    return _row


def ask_yes_no(key: str, prefix: str) -> PromptBuilder:
    def _build(draft, ctx: RenderContext) -> Prompt:
        return Prompt(ctx.t(key), yes_no_rows(ctx.t, prefix))

    return _build


def ask_currency(key: str, prefix: str) -> PromptBuilder:
    def _build(draft, ctx: RenderContext) -> Prompt:
        return Prompt(ctx.t(key), currency_rows(ctx.t, prefix))

    return _build


def ask_timing(key: str, prefix: str) -> PromptBuilder:
    def _build(draft, ctx: RenderContext) -> Prompt:
        return Prompt(ctx.t(key), timing_rows(ctx.t, prefix))

    return _build


# ── Rent flow ────────────────────────────────────────────────


def rent_role(draft: RentDraft, ctx: RenderContext) -> Prompt:
    t = ctx.t
    return Prompt(t("rent.role_prompt", draft.title or "-"), [
        [
            ButtonOption(label=t("role.tenant"), callback_data="rent:role:tenant"),
            ButtonOption(label=t("role.landlord"), callback_data="rent:role:landlord"),
        ],
        cancel_row(t),
    ])


def rent_start_year(draft: RentDraft, ctx: RenderContext) -> Prompt:
    return Prompt(ctx.t("rent.start_year_prompt", ctx.today.year), [cancel_row(ctx.t)])


def rent_contract_duration(draft: RentDraft, ctx: RenderContext) -> Prompt:
    t = ctx.t
    return Prompt(t("rent.contract_duration_prompt"), [
        [
            ButtonOption(label=t("duration.years", n), callback_data=f"rent:duration:{n}")
            for n in (1, 2, 3)
        ],
        [ButtonOption(label=t("duration.other"), callback_data="rent:duration:other")],
        cancel_row(t),
    ])


def rent_summary(draft: RentDraft, ctx: RenderContext) -> Prompt:
    t = ctx.t
    lines = [
        t("rent.summary_title"),
        "",
        t("summary.title", draft.title or "-"),
        t("summary.role", t(f"role.{draft.user_role}") if draft.user_role else "-"),
        t("summary.start_date", draft.start_date or "-"),
        t("summary.contract_duration", draft.contract_duration or "-"),
        t("summary.amount", draft.rent_amount or "-", draft.currency or ""),
        t("summary.due_day", draft.due_day or "-"),
        t("summary.monthly_reminder", _yes_no_label(t, draft.has_monthly_reminder)),
    ]
    if draft.has_monthly_reminder and draft.reminder_timing:
        lines.append(t("summary.timing", t(f"timing.{draft.reminder_timing}")))
    lines.append(t("summary.yearly_increase", _yes_no_label(t, draft.has_yearly_increase_reminder)))
    if draft.due_day and draft.due_day >= 29:
        lines += ["", t("rent.late_day_note", draft.due_day)]
    return Prompt("\n".join(lines), confirm_rows(t, "rent:confirm"))


def _yes_no_label(t: Translator, value: bool | None) -> str:
    if value is None:
        return "-"
    return t("buttons.yes") if value else t("buttons.no")


# ── Custom flow ──────────────────────────────────────────────


def custom_reminder_title(draft: CustomDraft, ctx: RenderContext) -> Prompt:
    number = len(draft.reminders) + 1
    return Prompt(ctx.t("custom.reminder_title_prompt", number), [cancel_row(ctx.t)])


def custom_reminder_date(draft: CustomDraft, ctx: RenderContext) -> Prompt:
    shown = ctx.today.replace(day=1)
    if draft.calendar_month:
        year, month = (int(part) for part in draft.calendar_month.split("-"))
        shown = date(year, month, 1)
    return Prompt(ctx.t("custom.reminder_date_prompt"), calendar_rows(ctx.t, shown, ctx.today))


def custom_reminder_list(draft: CustomDraft, ctx: RenderContext) -> Prompt:
    t = ctx.t
    lines = [t("custom.reminder_list_title", len(draft.reminders)), ""]
    lines += [_reminder_line(t, i, r, draft.currency) for i, r in enumerate(draft.reminders, 1)]
    return Prompt("\n".join(lines), [
        [ButtonOption(label=t("buttons.add_another"), callback_data="custom:add_another")],
        [ButtonOption(label=t("buttons.finish"), callback_data="custom:finish")],
        cancel_row(t),
    ])


def custom_summary(draft: CustomDraft, ctx: RenderContext) -> Prompt:
    t = ctx.t
    lines = [
        t("custom.summary_title"),
        "",
        t("summary.title", draft.title or "-"),
    ]
    if draft.description:
        lines.append(t("summary.description", draft.description))
    lines += ["", t("custom.reminder_list_title", len(draft.reminders))]
    lines += [_reminder_line(t, i, r, draft.currency) for i, r in enumerate(draft.reminders, 1)]
    return Prompt("\n".join(lines), confirm_rows(t, "custom:confirm"))


def _reminder_line(t: Translator, index: int, reminder, currency: str | None) -> str:
    line = f"{index}. {reminder.title or '-'} · {reminder.date or '-'}"
    if reminder.amount:
        line += f" · {reminder.amount} {currency or ''}".rstrip()
    if reminder.timing:
        line += f" · {t(f'timing.{reminder.timing}')}"
    return line
