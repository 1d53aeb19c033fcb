"""
Draft models — partially filled agreements accumulated across a conversation.

Every field is optional until the step that owns it has been answered.
Drafts are stored as a JSON payload next to the state id, so they must
survive a service restart between two messages: unknown keys are ignored
and missing keys come back as ``None``.

The three shapes form a tagged variant keyed by ``FlowKind``; the router
only ever asks for "the draft for this flow" via ``load_draft``.
"""

import logging
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agreement_bot.core.states import FlowKind

logger = logging.getLogger(__name__)


class _Draft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RentDraft(_Draft):
    title: str | None = None
    user_role: str | None = None           # "tenant" | "landlord"
    start_year: int | None = None          # date picker scratch, cleared once start_date is set
    start_month: int | None = None
    start_date: str | None = None          # DD.MM.YYYY
    contract_duration: int | None = None   # years
    currency: str | None = None
    rent_amount: str | None = None         # decimal string, 2 places
    due_day: int | None = None
    has_monthly_reminder: bool | None = None
    reminder_timing: str | None = None
    has_yearly_increase_reminder: bool | None = None


class CustomReminderDraft(_Draft):
    title: str | None = None
    date: str | None = None                # DD.MM.YYYY
    amount: str | None = None
    timing: str | None = None


class CustomDraft(_Draft):
    title: str | None = None
    description: str | None = None
    currency: str | None = None
    reminders: list[CustomReminderDraft] = Field(default_factory=list)
    calendar_month: str | None = None      # YYYY-MM shown by the date picker

    def with_last_reminder(self, **fields: Any) -> "CustomDraft":
        """Copy of the draft with fields updated on the reminder being built."""
        if not self.reminders:
            return self
        last = self.reminders[-1].model_copy(update=fields)
        return self.model_copy(update={"reminders": [*self.reminders[:-1], last]})


class EditDraft(_Draft):
    agreement_id: int | None = None
    field: str | None = None
    value: str | int | None = None         # validated new value, set by the edit step


Draft = Union[RentDraft, CustomDraft, EditDraft]

DRAFT_TYPES: dict[FlowKind, type[_Draft]] = {
    FlowKind.RENT: RentDraft,
    FlowKind.CUSTOM: CustomDraft,
    FlowKind.EDIT: EditDraft,
}


def empty_draft(kind: FlowKind) -> Draft:
    return DRAFT_TYPES[kind]()  # type: ignore[return-value]


def load_draft(kind: FlowKind, payload: dict[str, Any] | None) -> Draft:
    """
    Deserialize a stored payload into the draft shape for ``kind``.

    A payload that does not fit at all (wrong types, not a dict) yields an
    empty draft rather than an error, so a stale row never wedges a user.
    """
    model = DRAFT_TYPES[kind]
    if not payload:
        return model()  # type: ignore[return-value]
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as e:
        logger.warning("Discarding unreadable %s draft: %s", kind.value, e)
        return model()  # type: ignore[return-value]
