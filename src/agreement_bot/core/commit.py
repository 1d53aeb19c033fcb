"""
Commit stage — turns a finished draft into stored agreements.

Rent and custom drafts become one agreement plus its reminder plan, created
in a single repository call so a failure leaves nothing behind. Edit drafts
and one-press toggles become a patch on an agreement the user owns; when
the patched field shapes a rent reminder series, the future pending
reminders of that series are regenerated in the same call.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from agreement_bot.core import reminder_plan
from agreement_bot.core.drafts import CustomDraft, Draft, EditDraft, RentDraft
from agreement_bot.core.errors import ValidationError
from agreement_bot.core.ports import AgreementRepository, AgreementSnapshot, ReminderReplacement
from agreement_bot.core.validators import format_date, parse_date

logger = logging.getLogger(__name__)

Translator = Callable[..., str]

# EditDraft.field -> agreements column
EDIT_COLUMNS = {
    "title": "title",
    "amount": "rent_amount",
    "due_day": "due_day",
    "description": "description",
    "timing": "reminder_timing",
}

# One-press toggle -> agreements column
TOGGLE_COLUMNS = {
    "monthly": "has_monthly_reminder",
    "yearly": "has_yearly_increase_reminder",
}

MONTHLY_SERIES = ("pre_notify", "due_day")
YEARLY_SERIES = ("yearly_increase",)

# Rent fields whose change reshapes a reminder series
SERIES_BY_FIELD = {
    "amount": MONTHLY_SERIES,
    "due_day": MONTHLY_SERIES,
    "timing": MONTHLY_SERIES,
    "monthly": MONTHLY_SERIES,
    "yearly": YEARLY_SERIES,
}


@dataclass(frozen=True)
class CommitResult:
    record_id: int
    summary: str


class CommitStage:
    def __init__(self, repository: AgreementRepository) -> None:
        self._repo = repository

    async def commit(self, user_id: int, draft: Draft, today: date, t: Translator) -> CommitResult:
        """Persist ``draft``. Raises PersistenceError; the caller keeps the state on failure."""
        if isinstance(draft, RentDraft):
            return await self._commit_rent(user_id, draft, today, t)
        if isinstance(draft, CustomDraft):
            return await self._commit_custom(user_id, draft, today, t)
        return await self._commit_edit(user_id, draft, today, t)

    async def _commit_rent(self, user_id: int, draft: RentDraft, today: date, t: Translator) -> CommitResult:
        fields = rent_agreement_fields(draft)
        reminders = reminder_plan.rent_plan(draft, today, t)
        agreement_id = await self._repo.create_agreement_and_reminders(user_id, fields, reminders)
        logger.info(
            "Rent agreement %d created for user %d with %d reminders",
            agreement_id, user_id, len(reminders),
        )
        lines = [t("rent.success", draft.title, len(reminders))]
        if draft.due_day and draft.due_day >= 29:
            lines.append(t("rent.late_day_note", draft.due_day))
        return CommitResult(agreement_id, "\n\n".join(lines))

    async def _commit_custom(self, user_id: int, draft: CustomDraft, today: date, t: Translator) -> CommitResult:
        fields = custom_agreement_fields(draft)
        reminders = reminder_plan.custom_plan(draft, today)
        agreement_id = await self._repo.create_agreement_and_reminders(user_id, fields, reminders)
        logger.info(
            "Custom agreement %d created for user %d with %d reminders",
            agreement_id, user_id, len(reminders),
        )
        return CommitResult(agreement_id, t("custom.success", draft.title, len(draft.reminders)))

    async def _commit_edit(self, user_id: int, draft: EditDraft, today: date, t: Translator) -> CommitResult:
        agreement = await self._repo.get_agreement(draft.agreement_id)
        if agreement is None or agreement.owner_telegram_id != user_id:
            raise ValidationError("edit.not_found")

        column = EDIT_COLUMNS[draft.field]
        value: Any = draft.value
        if column == "rent_amount" and value is not None:
            value = Decimal(str(value))
        series = series_replacement(replace(agreement, **{column: value}), draft.field, today, t)
        await self._repo.update_agreement(agreement.id, user_id, {column: value}, replace=series)
        logger.info("Agreement %d: %s updated by user %d", agreement.id, column, user_id)
        return CommitResult(agreement.id, t("edit.success", t(f"field.{draft.field}")))

    async def toggle(
        self, user_id: int, agreement: AgreementSnapshot, field: str, today: date, t: Translator,
    ) -> CommitResult:
        """Flip a yes/no setting of an agreement the caller already authorized."""
        column = TOGGLE_COLUMNS[field]
        value = not getattr(agreement, column)
        series = series_replacement(replace(agreement, **{column: value}), field, today, t)
        await self._repo.update_agreement(agreement.id, user_id, {column: value}, replace=series)
        logger.info("Agreement %d: %s set to %s by user %d", agreement.id, column, value, user_id)
        key = "edit.toggle_on" if value else "edit.toggle_off"
        return CommitResult(agreement.id, t(key, t(f"field.{field}")))


def rent_agreement_fields(draft: RentDraft) -> dict[str, Any]:
    return {
        "agreement_type": "rent",
        "title": draft.title,
        "user_role": draft.user_role,
        "start_date": parse_date(draft.start_date) if draft.start_date else None,
        "currency": draft.currency,
        "rent_amount": Decimal(draft.rent_amount) if draft.rent_amount else None,
        "due_day": draft.due_day,
        "has_monthly_reminder": bool(draft.has_monthly_reminder),
        "reminder_timing": draft.reminder_timing if draft.has_monthly_reminder else None,
        "has_yearly_increase_reminder": bool(draft.has_yearly_increase_reminder),
        "contract_duration_years": draft.contract_duration,
        "has_ten_year_reminder": True,
        "has_five_year_reminder": True,
    }


def custom_agreement_fields(draft: CustomDraft) -> dict[str, Any]:
    return {
        "agreement_type": "custom",
        "title": draft.title,
        "description": draft.description,
        "currency": draft.currency,
    }


def rent_draft_from(agreement: AgreementSnapshot) -> RentDraft:
    """Rebuild the draft a stored rent agreement was created from."""
    return RentDraft(
        title=agreement.title,
        user_role=agreement.user_role,
        start_date=format_date(agreement.start_date) if agreement.start_date else None,
        contract_duration=agreement.contract_duration_years,
        currency=agreement.currency,
        rent_amount=str(agreement.rent_amount) if agreement.rent_amount is not None else None,
        due_day=agreement.due_day,
        has_monthly_reminder=agreement.has_monthly_reminder,
        reminder_timing=agreement.reminder_timing,
        has_yearly_increase_reminder=agreement.has_yearly_increase_reminder,
    )


def series_replacement(
    agreement: AgreementSnapshot, field: str, today: date, t: Translator,
) -> ReminderReplacement | None:
    """Future reminders of the series ``field`` feeds, rebuilt from the patched agreement."""
    types = SERIES_BY_FIELD.get(field)
    if types is None or agreement.agreement_type != "rent" or agreement.start_date is None:
        return None
    draft = rent_draft_from(agreement)
    if types == MONTHLY_SERIES:
        specs = reminder_plan.monthly_reminders(draft, agreement.start_date, today, t)
    else:
        specs = reminder_plan.yearly_increase_reminders(draft, agreement.start_date, today, t)
    return ReminderReplacement(reminder_types=types, after=today, reminders=specs)
