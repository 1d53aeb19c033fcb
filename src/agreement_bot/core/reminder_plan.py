"""
Reminder plans derived from a completed agreement draft.

Everything here is pure date arithmetic: given a draft, today's date and a
translator for the titles, build the list of ``ReminderSpec`` rows that
the commit stage stores next to the agreement. Occurrences whose reminder
date is not after ``today`` are dropped.

Rent agreements get:
  - monthly payment / collection reminders for the first 12 months
  - yearly increase reminders 4 and 3 months before each anniversary
  - a ten-year notice series 6, 4 and 3 months before
    start + (contract duration + 10) years
  - five-year notices (5, 10, 15 years) that fall before that milestone,
    6 months, 3 months and 31 days ahead
"""

from collections.abc import Callable
from datetime import date, timedelta
from decimal import Decimal

from agreement_bot.core.drafts import CustomDraft, RentDraft
from agreement_bot.core.ports import ReminderSpec
from agreement_bot.core.validators import add_months, days_in_month, format_date, parse_date

Translator = Callable[..., str]

TIMING_DAYS_BEFORE = {
    "same_day": 0,
    "1_day_before": 1,
    "3_days_before": 3,
    "1_week_before": 7,
}

MONTHLY_OCCURRENCES = 12
YEARLY_INCREASE_YEARS = range(1, 12)
FIVE_YEAR_PERIODS = (1, 2, 3)


def _decimal(value: str | None) -> Decimal | None:
    return Decimal(value) if value else None


def _due_with_pre_notify(
    title: str,
    due: date,
    amount: Decimal | None,
    timing: str | None,
    today: date,
) -> list[ReminderSpec]:
    specs = []
    days_before = TIMING_DAYS_BEFORE.get(timing or "same_day", 0)
    if days_before:
        pre = due - timedelta(days=days_before)
        if pre > today:
            specs.append(ReminderSpec("pre_notify", title, due, pre, amount))
    specs.append(ReminderSpec("due_day", title, due, due, amount))
    return specs


# ── Rent ─────────────────────────────────────────────────────


def monthly_reminders(draft: RentDraft, start: date, today: date, t: Translator) -> list[ReminderSpec]:
    if not draft.has_monthly_reminder:
        return []
    due_day = draft.due_day or 1
    amount = _decimal(draft.rent_amount)
    key = "reminder.payment_title" if draft.user_role == "tenant" else "reminder.collection_title"
    title = t(key, draft.title or "")

    specs: list[ReminderSpec] = []
    first = start.replace(day=1)
    for offset in range(MONTHLY_OCCURRENCES):
        month_start = add_months(first, offset)
        due = month_start.replace(day=min(due_day, days_in_month(month_start.year, month_start.month)))
        if due <= today:
            continue
        specs += _due_with_pre_notify(title, due, amount, draft.reminder_timing, today)
    return specs


def yearly_increase_reminders(draft: RentDraft, start: date, today: date, t: Translator) -> list[ReminderSpec]:
    if not draft.has_yearly_increase_reminder:
        return []
    key = "reminder.yearly_increase_landlord" if draft.user_role == "landlord" else "reminder.yearly_increase_tenant"
    title = t(key, draft.title or "")

    specs = []
    for year in YEARLY_INCREASE_YEARS:
        anniversary = add_months(start, 12 * year)
        for months_before in (4, 3):
            remind_on = add_months(anniversary, -months_before)
            if remind_on > today:
                specs.append(ReminderSpec("yearly_increase", title, anniversary, remind_on))
    return specs


def ten_year_milestone(start: date, contract_duration: int) -> date:
    return add_months(start, (contract_duration + 10) * 12)


def ten_year_reminders(draft: RentDraft, start: date, today: date, t: Translator) -> list[ReminderSpec]:
    milestone = ten_year_milestone(start, draft.contract_duration or 1)
    side = "landlord" if draft.user_role == "landlord" else "tenant"
    notice_deadline = format_date(add_months(milestone, -3))

    specs = []
    for months_before in (6, 4, 3):
        remind_on = add_months(milestone, -months_before)
        if remind_on <= today:
            continue
        title = t(f"reminder.ten_year_{side}_{months_before}m", draft.title or "", notice_deadline)
        specs.append(ReminderSpec("ten_year_notice", title, milestone, remind_on))
    return specs


def five_year_reminders(draft: RentDraft, start: date, today: date, t: Translator) -> list[ReminderSpec]:
    ten_year_end = ten_year_milestone(start, draft.contract_duration or 1)
    side = "landlord" if draft.user_role == "landlord" else "tenant"

    specs = []
    for period in FIVE_YEAR_PERIODS:
        years = 5 * period
        milestone = add_months(start, 12 * years)
        if milestone >= ten_year_end:
            continue
        title = t(f"reminder.five_year_{side}", draft.title or "", years)
        for remind_on in (add_months(milestone, -6), add_months(milestone, -3)):
            if remind_on > today:
                specs.append(ReminderSpec("five_year_notice", title, milestone, remind_on))
        last_call = milestone - timedelta(days=31)
        if last_call > today:
            deadline_title = t("reminder.five_year_deadline", draft.title or "", years, 31)
            specs.append(ReminderSpec("five_year_notice", deadline_title, milestone, last_call))
    return specs


def rent_plan(draft: RentDraft, today: date, t: Translator) -> list[ReminderSpec]:
    if not draft.start_date:
        return []
    start = parse_date(draft.start_date)
    return [
        *monthly_reminders(draft, start, today, t),
        *yearly_increase_reminders(draft, start, today, t),
        *ten_year_reminders(draft, start, today, t),
        *five_year_reminders(draft, start, today, t),
    ]


# ── Custom ───────────────────────────────────────────────────


def custom_plan(draft: CustomDraft, today: date) -> list[ReminderSpec]:
    specs: list[ReminderSpec] = []
    for reminder in draft.reminders:
        if not reminder.date:
            continue
        due = parse_date(reminder.date)
        specs += _due_with_pre_notify(
            reminder.title or draft.title or "", due, _decimal(reminder.amount), reminder.timing, today,
        )
    return specs
