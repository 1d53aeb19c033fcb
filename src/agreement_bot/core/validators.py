"""
Input validators for conversation steps.

Validators are pure functions ``(raw, ctx) -> value`` that raise
``ValidationError`` with an i18n reason key when the input is unusable.
``validate()`` turns that into a ``Valid`` / ``Invalid`` result for the
router. Nothing here touches the database or the clock directly: the
current date comes in through ``StepContext``.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from agreement_bot.core.errors import ValidationError

CURRENCIES: tuple[str, ...] = ("TRY", "EUR", "USD", "GBP")
REMINDER_TIMINGS: tuple[str, ...] = ("same_day", "1_day_before", "3_days_before", "1_week_before")
ROLES: tuple[str, ...] = ("tenant", "landlord")

MAX_TITLE_LENGTH = 50
MAX_REMINDER_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 200
MAX_AMOUNT = Decimal("10000000")
DATE_FORMAT = "%d.%m.%Y"

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")
_INT_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class StepContext:
    """What a validator may look at besides the raw input."""

    draft: Any
    today: date
    max_reminders: int = 20


@dataclass(frozen=True)
class Valid:
    value: Any


@dataclass(frozen=True)
class Invalid:
    reason: str
    args: tuple = ()


Validation = Valid | Invalid
Validator = Callable[[str, StepContext], Any]


def validate(validator: Validator, raw: str, ctx: StepContext) -> Validation:
    try:
        return Valid(validator(raw, ctx))
    except ValidationError as e:
        return Invalid(e.reason, e.args_)


def sanitize_input(text: str) -> str:
    """Trim and drop control characters, keeping newlines and tabs."""
    cleaned = "".join(
        ch for ch in text.strip()
        if ch in ("\n", "\t") or not _is_control(ch)
    )
    return cleaned.strip()


def _is_control(ch: str) -> bool:
    code = ord(ch)
    return code < 0x20 or 0x7F <= code <= 0x9F


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = value.year * 12 + (value.month - 1) + months
    target_year, target_month = divmod(index, 12)
    target_month += 1
    if not 1 <= target_year <= 9999:
        raise ValueError(f"year {target_year} is out of range")
    day = min(value.day, days_in_month(target_year, target_month))
    return date(target_year, target_month, day)


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(text: str) -> date:
    """Parse a DD.MM.YYYY string (raises ValueError)."""
    return datetime.strptime(text, DATE_FORMAT).date()


# ── Text ─────────────────────────────────────────────────────


def title(raw: str, ctx: StepContext) -> str:
    value = sanitize_input(raw)
    if not value:
        raise ValidationError("validation.title_required")
    if len(value) > MAX_TITLE_LENGTH:
        raise ValidationError("validation.title_too_long", MAX_TITLE_LENGTH)
    return value


def reminder_title(raw: str, ctx: StepContext) -> str:
    value = sanitize_input(raw)
    if not value:
        raise ValidationError("validation.reminder_title_required")
    if len(value) > MAX_REMINDER_TITLE_LENGTH:
        raise ValidationError("validation.reminder_title_too_long", MAX_REMINDER_TITLE_LENGTH)
    return value


def description(raw: str, ctx: StepContext) -> str | None:
    """Optional free text; an empty answer or a lone '-' clears it."""
    if raw.strip() == "-":
        return None
    value = sanitize_input(raw)
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError("validation.description_too_long", MAX_DESCRIPTION_LENGTH)
    return value or None


# ── Numbers ──────────────────────────────────────────────────


def _int_in_range(raw: str, low: int, high: int, reason: str) -> int:
    cleaned = sanitize_input(raw)
    # int() also accepts "+5", "1_5" and non-ASCII digits
    if not _INT_RE.fullmatch(cleaned):
        raise ValidationError(reason, low, high)
    value = int(cleaned)
    if not low <= value <= high:
        raise ValidationError(reason, low, high)
    return value


def day_of_month(raw: str, ctx: StepContext) -> int:
    return _int_in_range(raw, 1, 31, "validation.invalid_day")


def year(raw: str, ctx: StepContext) -> int:
    return _int_in_range(raw, 1900, 2100, "validation.invalid_year")


def month(raw: str, ctx: StepContext) -> int:
    return _int_in_range(raw, 1, 12, "validation.invalid_month")


def start_day(raw: str, ctx: StepContext) -> str:
    """Day of the rent start date; bounded by the month picked earlier."""
    picked_year = ctx.draft.start_year or ctx.today.year
    picked_month = ctx.draft.start_month or 1
    max_day = days_in_month(picked_year, picked_month)
    day = _int_in_range(raw, 1, max_day, "validation.invalid_day")
    return format_date(date(picked_year, picked_month, day))


def contract_years(raw: str, ctx: StepContext) -> int:
    return _int_in_range(raw, 1, 30, "validation.invalid_duration")


def amount(raw: str, ctx: StepContext) -> str:
    """Positive decimal up to MAX_AMOUNT, normalized to two places."""
    cleaned = raw.strip().replace(",", ".").replace(" ", "").replace("_", "")
    if not _AMOUNT_RE.match(cleaned):
        raise ValidationError("validation.invalid_amount")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise ValidationError("validation.invalid_amount") from None
    if value <= 0:
        raise ValidationError("validation.amount_zero")
    if value > MAX_AMOUNT:
        raise ValidationError("validation.amount_too_high", f"{MAX_AMOUNT:,.0f}")
    return str(value.quantize(Decimal("0.01")))


# ── Dates ────────────────────────────────────────────────────


def future_date(raw: str, ctx: StepContext) -> str:
    """A DD.MM.YYYY date that is today or later."""
    try:
        value = parse_date(sanitize_input(raw))
    except ValueError:
        raise ValidationError("validation.invalid_date") from None
    if value < ctx.today:
        raise ValidationError("validation.past_date")
    return format_date(value)


# ── Choices ──────────────────────────────────────────────────


def one_of(options: tuple[str, ...]) -> Validator:
    """Build a validator accepting exactly one of ``options``."""

    def _choice(raw: str, ctx: StepContext) -> str:
        if raw not in options:
            raise ValidationError("validation.use_buttons")
        return raw

    return _choice


def yes_no(raw: str, ctx: StepContext) -> bool:
    if raw not in ("yes", "no"):
        raise ValidationError("validation.use_buttons")
    return raw == "yes"


currency = one_of(CURRENCIES)
role = one_of(ROLES)
reminder_timing = one_of(REMINDER_TIMINGS)
