"""
Step registry — the ordered definition of every conversation flow.

Each step names the state the user is in, how its answer is parsed
(typed text, a button token, or both), the pure transition that folds the
answer into the draft and picks the next state, and the prompt shown while
waiting. The registry is built once at import time and is read-only.

Numbering ("Step 3 of 12") is derived from the ordered tuples below, so
adding or removing a numbered step never needs a second edit elsewhere.
"""

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any

from agreement_bot.core import prompts, validators as v
from agreement_bot.core import states as s
from agreement_bot.core.drafts import CustomDraft, CustomReminderDraft, EditDraft, RentDraft
from agreement_bot.core.errors import CapacityExceeded, ValidationError
from agreement_bot.core.prompts import Prompt, PromptBuilder, RenderContext
from agreement_bot.core.states import FlowKind
from agreement_bot.core.validators import StepContext, Validation, Validator

TERMINAL = "__terminal__"

Transition = Callable[[Any, Any], tuple[Any, str]]


class InputKind(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    CHOICE = "choice"
    CONFIRM = "confirm"
    DATE = "date"


@dataclass(frozen=True)
class CalendarPage:
    """Navigation value of the date picker: the month to show next."""

    month: str  # YYYY-MM


@dataclass(frozen=True)
class Choice:
    """A button token family accepted by a step.

    ``token`` matches exactly, or as a prefix followed by ``:`` in which
    case the remainder is handed to ``parse``.
    """

    token: str
    parse: Validator

    def matches(self, data: str) -> bool:
        return data == self.token or data.startswith(self.token + ":")

    def argument(self, data: str) -> str:
        return data[len(self.token) + 1:] if data != self.token else ""


@dataclass(frozen=True)
class Step:
    state_id: str
    input_kind: InputKind
    prompt: PromptBuilder
    transition: Transition
    parse_text: Validator | None = None
    choices: tuple[Choice, ...] = ()
    unique_title: bool = False      # answer must not collide with another agreement title

    @property
    def flow(self) -> FlowKind:
        kind = s.flow_kind_for(self.state_id)
        assert kind is not None, self.state_id
        return kind

    def validate_text(self, raw: str, ctx: StepContext) -> Validation:
        if self.parse_text is None:
            return v.Invalid("validation.use_buttons")
        return v.validate(self.parse_text, raw, ctx)

    def validate_choice(self, token: str, ctx: StepContext) -> Validation | None:
        """Parse a button token; ``None`` when no choice of this step matches."""
        for choice in self.choices:
            if choice.matches(token):
                return v.validate(choice.parse, choice.argument(token), ctx)
        return None

    def render(self, draft, ctx: RenderContext) -> Prompt:
        prompt = self.prompt(draft, ctx)
        position = progress(self.state_id)
        if position:
            prompt = prompt.with_header(ctx.t("flow.step_header", *position))
        return prompt


def _constant(value: Any) -> Validator:
    def _parse(raw: str, ctx: StepContext) -> Any:
        return value

    return _parse


# ── Choice parsers ───────────────────────────────────────────


def _contract_duration(raw: str, ctx: StepContext) -> int | str:
    if raw == "other":
        return raw
    if raw in ("1", "2", "3"):
        return int(raw)
    raise ValidationError("validation.use_buttons")


def _calendar_page(step: int) -> Validator:
    """Month shown after pressing prev (-1) or next (+1) on ``Y:M``."""

    def _parse(raw: str, ctx: StepContext) -> CalendarPage:
        try:
            year, month = (int(part) for part in raw.split(":"))
            shown = v.add_months(date(year, month, 1), step)
        except ValueError:
            raise ValidationError("validation.use_buttons") from None
        return CalendarPage(f"{shown.year:04d}-{shown.month:02d}")

    return _parse


def _calendar_day(raw: str, ctx: StepContext) -> str:
    try:
        year, month, day = (int(part) for part in raw.split(":"))
        picked = date(year, month, day)
    except ValueError:
        raise ValidationError("validation.invalid_date") from None
    if picked < ctx.today:
        raise ValidationError("validation.past_date")
    return v.format_date(picked)


def _add_another(raw: str, ctx: StepContext) -> str:
    if len(ctx.draft.reminders) >= ctx.max_reminders:
        raise CapacityExceeded(ctx.max_reminders)
    return "add"


def _finish(raw: str, ctx: StepContext) -> str:
    if not ctx.draft.reminders:
        raise ValidationError("validation.no_reminders")
    return "finish"


# ── Rent transitions ─────────────────────────────────────────


def _set(field: str, next_state: str) -> Transition:
    """Transition that stores the value in ``field`` and moves on."""

    def _transition(draft, value):
        return draft.model_copy(update={field: value}), next_state

    return _transition


def _rent_start_day(draft: RentDraft, value: str):
    updated = draft.model_copy(update={"start_date": value, "start_year": None, "start_month": None})
    return updated, s.RENT_CONTRACT_DURATION


def _rent_duration(draft: RentDraft, value: int | str):
    if value == "other":
        return draft, s.RENT_CONTRACT_DURATION_CUSTOM
    return draft.model_copy(update={"contract_duration": value}), s.RENT_CURRENCY


def _rent_monthly(draft: RentDraft, value: bool):
    if value:
        return draft.model_copy(update={"has_monthly_reminder": True}), s.RENT_REMINDER_TIMING
    updated = draft.model_copy(update={"has_monthly_reminder": False, "reminder_timing": None})
    return updated, s.RENT_YEARLY_INCREASE


def _confirm(draft, value):
    return draft, TERMINAL


# ── Custom transitions ───────────────────────────────────────


def _custom_reminder_title(draft: CustomDraft, value: str):
    reminders = [*draft.reminders, CustomReminderDraft(title=value)]
    return draft.model_copy(update={"reminders": reminders, "calendar_month": None}), s.CUSTOM_REMINDER_DATE


def _custom_reminder_date(draft: CustomDraft, value: str | CalendarPage):
    if isinstance(value, CalendarPage):
        return draft.model_copy(update={"calendar_month": value.month}), s.CUSTOM_REMINDER_DATE
    updated = draft.with_last_reminder(date=value).model_copy(update={"calendar_month": None})
    return updated, s.CUSTOM_REMINDER_AMOUNT


def _custom_reminder_amount(draft: CustomDraft, value: str | None):
    updated = draft.with_last_reminder(amount=value)
    if value is not None and not draft.currency:
        return updated, s.CUSTOM_CURRENCY
    return updated, s.CUSTOM_REMINDER_TIMING


def _custom_reminder_timing(draft: CustomDraft, value: str):
    return draft.with_last_reminder(timing=value), s.CUSTOM_REMINDER_LIST


def _custom_list(draft: CustomDraft, value: str):
    if value == "add":
        return draft, s.CUSTOM_REMINDER_TITLE
    return draft, s.CUSTOM_SUMMARY


def finish_reminders(draft: CustomDraft) -> tuple[CustomDraft, str]:
    """Forced move to the summary once the reminder list is full."""
    return _custom_list(draft, "finish")


# ── Edit transitions ─────────────────────────────────────────


def _edit_value(draft: EditDraft, value):
    return draft.model_copy(update={"value": value}), TERMINAL


# ── Registry ─────────────────────────────────────────────────

_STEPS: tuple[Step, ...] = (
    # Rent
    Step(s.RENT_TITLE, InputKind.TEXT, prompts.ask("rent.title_prompt"),
         _set("title", s.RENT_ROLE), parse_text=v.title, unique_title=True),
    Step(s.RENT_ROLE, InputKind.CHOICE, prompts.rent_role,
         _set("user_role", s.RENT_START_YEAR), choices=(Choice("rent:role", v.role),)),
    Step(s.RENT_START_YEAR, InputKind.NUMBER, prompts.rent_start_year,
         _set("start_year", s.RENT_START_MONTH), parse_text=v.year),
    Step(s.RENT_START_MONTH, InputKind.NUMBER, prompts.ask("rent.start_month_prompt"),
         _set("start_month", s.RENT_START_DAY), parse_text=v.month),
    Step(s.RENT_START_DAY, InputKind.NUMBER, prompts.ask("rent.start_day_prompt"),
         _rent_start_day, parse_text=v.start_day),
    Step(s.RENT_CONTRACT_DURATION, InputKind.CHOICE, prompts.rent_contract_duration,
         _rent_duration, choices=(Choice("rent:duration", _contract_duration),)),
    Step(s.RENT_CONTRACT_DURATION_CUSTOM, InputKind.NUMBER, prompts.ask("rent.contract_duration_custom_prompt"),
         _set("contract_duration", s.RENT_CURRENCY), parse_text=v.contract_years),
    Step(s.RENT_CURRENCY, InputKind.CHOICE, prompts.ask_currency("rent.currency_prompt", "rent:currency"),
         _set("currency", s.RENT_AMOUNT), choices=(Choice("rent:currency", v.currency),)),
    Step(s.RENT_AMOUNT, InputKind.NUMBER, prompts.ask("rent.amount_prompt"),
         _set("rent_amount", s.RENT_DUE_DAY), parse_text=v.amount),
    Step(s.RENT_DUE_DAY, InputKind.NUMBER, prompts.ask("rent.due_day_prompt"),
         _set("due_day", s.RENT_MONTHLY_REMINDER), parse_text=v.day_of_month),
    Step(s.RENT_MONTHLY_REMINDER, InputKind.CONFIRM, prompts.ask_yes_no("rent.monthly_reminder_prompt", "rent:monthly"),
         _rent_monthly, choices=(Choice("rent:monthly", v.yes_no),)),
    Step(s.RENT_REMINDER_TIMING, InputKind.CHOICE, prompts.ask_timing("rent.reminder_timing_prompt", "rent:timing"),
         _set("reminder_timing", s.RENT_YEARLY_INCREASE), choices=(Choice("rent:timing", v.reminder_timing),)),
    Step(s.RENT_YEARLY_INCREASE, InputKind.CONFIRM, prompts.ask_yes_no("rent.yearly_increase_prompt", "rent:yearly"),
         _set("has_yearly_increase_reminder", s.RENT_SUMMARY), choices=(Choice("rent:yearly", v.yes_no),)),
    Step(s.RENT_SUMMARY, InputKind.CONFIRM, prompts.rent_summary,
         _confirm, choices=(Choice("rent:confirm", _constant(True)),)),

    # Custom
    Step(s.CUSTOM_TITLE, InputKind.TEXT, prompts.ask("custom.title_prompt"),
         _set("title", s.CUSTOM_DESCRIPTION), parse_text=v.title, unique_title=True),
    Step(s.CUSTOM_DESCRIPTION, InputKind.TEXT,
         prompts.ask("custom.description_prompt", prompts.skip_row("custom:skip_description")),
         _set("description", s.CUSTOM_REMINDER_TITLE), parse_text=v.description,
         choices=(Choice("custom:skip_description", _constant(None)),)),
    Step(s.CUSTOM_REMINDER_TITLE, InputKind.TEXT, prompts.custom_reminder_title,
         _custom_reminder_title, parse_text=v.reminder_title),
    Step(s.CUSTOM_REMINDER_DATE, InputKind.DATE, prompts.custom_reminder_date,
         _custom_reminder_date, parse_text=v.future_date,
         choices=(
             Choice("custom:cal:day", _calendar_day),
             Choice("custom:cal:prev", _calendar_page(-1)),
             Choice("custom:cal:next", _calendar_page(+1)),
         )),
    Step(s.CUSTOM_REMINDER_AMOUNT, InputKind.NUMBER,
         prompts.ask("custom.reminder_amount_prompt", prompts.skip_row("custom:skip_amount")),
         _custom_reminder_amount, parse_text=v.amount,
         choices=(Choice("custom:skip_amount", _constant(None)),)),
    Step(s.CUSTOM_CURRENCY, InputKind.CHOICE, prompts.ask_currency("custom.currency_prompt", "custom:currency"),
         _set("currency", s.CUSTOM_REMINDER_TIMING), choices=(Choice("custom:currency", v.currency),)),
    Step(s.CUSTOM_REMINDER_TIMING, InputKind.CHOICE,
         prompts.ask_timing("custom.reminder_timing_prompt", "custom:timing"),
         _custom_reminder_timing, choices=(Choice("custom:timing", v.reminder_timing),)),
    Step(s.CUSTOM_REMINDER_LIST, InputKind.CHOICE, prompts.custom_reminder_list,
         _custom_list, choices=(Choice("custom:add_another", _add_another), Choice("custom:finish", _finish))),
    Step(s.CUSTOM_SUMMARY, InputKind.CONFIRM, prompts.custom_summary,
         _confirm, choices=(Choice("custom:confirm", _constant(True)),)),

    # Edit
    Step(s.EDIT_TITLE, InputKind.TEXT, prompts.ask("edit.title_prompt"),
         _edit_value, parse_text=v.title, unique_title=True),
    Step(s.EDIT_AMOUNT, InputKind.NUMBER, prompts.ask("edit.amount_prompt"),
         _edit_value, parse_text=v.amount),
    Step(s.EDIT_DUE_DAY, InputKind.NUMBER, prompts.ask("edit.due_day_prompt"),
         _edit_value, parse_text=v.day_of_month),
    Step(s.EDIT_DESCRIPTION, InputKind.TEXT, prompts.ask("edit.description_prompt"),
         _edit_value, parse_text=v.description),
    Step(s.EDIT_REMINDER_TIMING, InputKind.CHOICE, prompts.ask_timing("edit.timing_prompt", "edit_timing"),
         _edit_value, choices=(Choice("edit_timing", v.reminder_timing),)),
)

REGISTRY: Mapping[str, Step] = MappingProxyType({step.state_id: step for step in _STEPS})

FIRST_STEP: Mapping[FlowKind, str] = MappingProxyType({
    FlowKind.RENT: s.RENT_TITLE,
    FlowKind.CUSTOM: s.CUSTOM_TITLE,
})

# Steps that show "Step N of M", in order
NUMBERED_STEPS: Mapping[FlowKind, tuple[str, ...]] = MappingProxyType({
    FlowKind.RENT: (
        s.RENT_TITLE,
        s.RENT_ROLE,
        s.RENT_START_YEAR,
        s.RENT_START_MONTH,
        s.RENT_START_DAY,
        s.RENT_CONTRACT_DURATION,
        s.RENT_CURRENCY,
        s.RENT_AMOUNT,
        s.RENT_DUE_DAY,
        s.RENT_MONTHLY_REMINDER,
        s.RENT_REMINDER_TIMING,
        s.RENT_YEARLY_INCREASE,
    ),
    FlowKind.CUSTOM: (
        s.CUSTOM_TITLE,
        s.CUSTOM_DESCRIPTION,
        s.CUSTOM_REMINDER_TITLE,
    ),
})


def get_step(state_id: str) -> Step | None:
    return REGISTRY.get(state_id)


def progress(state_id: str) -> tuple[int, int] | None:
    """(position, total) for numbered steps, else None."""
    kind = s.flow_kind_for(state_id)
    numbered = NUMBERED_STEPS.get(kind) if kind else None
    if not numbered or state_id not in numbered:
        return None
    return numbered.index(state_id) + 1, len(numbered)
