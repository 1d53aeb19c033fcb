"""
Tests for step input validators and date helpers.
"""

from datetime import date

import pytest

from agreement_bot.core import validators as v
from agreement_bot.core.drafts import RentDraft
from agreement_bot.core.errors import ValidationError

TODAY = date(2026, 10, 19)


def ctx(draft=None) -> v.StepContext:
    return v.StepContext(draft=draft or RentDraft(), today=TODAY)


def reason(validator, raw, context=None) -> v.Invalid:
    result = v.validate(validator, raw, context or ctx())
    assert isinstance(result, v.Invalid), result
    return result


class TestSanitize:
    """Tests for sanitize_input."""

    def test_strips_control_characters(self):
        assert v.sanitize_input("  hi\x00there \x07 ") == "hithere"

    def test_keeps_newlines_inside_text(self):
        assert v.sanitize_input("line one\nline two") == "line one\nline two"


class TestTitle:
    """Title and reminder title validation."""

    def test_trims_and_accepts(self):
        assert v.title("  Flat 3B  ", ctx()) == "Flat 3B"

    def test_empty_is_required(self):
        assert reason(v.title, "   ").reason == "validation.title_required"

    def test_fifty_characters_is_the_limit(self):
        assert v.title("x" * 50, ctx()) == "x" * 50
        result = reason(v.title, "x" * 51)
        assert result.reason == "validation.title_too_long"
        assert result.args == (50,)

    def test_reminder_title_allows_longer_text(self):
        assert v.reminder_title("r" * 100, ctx()) == "r" * 100
        assert reason(v.reminder_title, "r" * 101).reason == "validation.reminder_title_too_long"


class TestDescription:
    def test_dash_clears(self):
        assert v.description("-", ctx()) is None

    def test_blank_is_none(self):
        assert v.description("  ", ctx()) is None

    def test_too_long(self):
        assert reason(v.description, "d" * 201).reason == "validation.description_too_long"


class TestAmount:
    """Amounts are positive decimals normalized to two places."""

    @pytest.mark.parametrize("raw,expected", [
        ("15000", "15000.00"),
        ("1,5", "1.50"),
        ("15 000,50", "15000.50"),
        ("10000000", "10000000.00"),
    ])
    def test_accepted(self, raw, expected):
        assert v.amount(raw, ctx()) == expected

    @pytest.mark.parametrize("raw", ["abc", "-5", "1e5", "", "1.2.3"])
    def test_malformed(self, raw):
        assert reason(v.amount, raw).reason == "validation.invalid_amount"

    def test_zero(self):
        assert reason(v.amount, "0").reason == "validation.amount_zero"

    def test_above_maximum(self):
        assert reason(v.amount, "10000000.01").reason == "validation.amount_too_high"


class TestNumbers:
    def test_day_of_month_bounds(self):
        assert v.day_of_month("31", ctx()) == 31
        result = reason(v.day_of_month, "32")
        assert result.reason == "validation.invalid_day"
        assert result.args == (1, 31)
        assert reason(v.day_of_month, "0").reason == "validation.invalid_day"

    def test_non_numeric_day(self):
        assert reason(v.day_of_month, "fifth").reason == "validation.invalid_day"

    def test_month_and_year(self):
        assert v.month("12", ctx()) == 12
        assert reason(v.month, "13").reason == "validation.invalid_month"
        assert v.year("2026", ctx()) == 2026
        assert reason(v.year, "26").reason == "validation.invalid_year"

    def test_contract_years(self):
        assert v.contract_years("5", ctx()) == 5
        assert reason(v.contract_years, "31").reason == "validation.invalid_duration"

    def test_surrounding_whitespace_is_trimmed(self):
        assert v.day_of_month(" 15 ", ctx()) == 15

    @pytest.mark.parametrize("raw", ["1_5", "+5", "-5", "1 5", "5.0", "١٥", ""])
    def test_only_plain_digits(self, raw):
        result = reason(v.day_of_month, raw)
        assert result.reason == "validation.invalid_day"
        assert result.args == (1, 31)

    def test_underscored_year(self):
        assert reason(v.year, "2_026").reason == "validation.invalid_year"


class TestStartDay:
    """The start day is bounded by the month picked in the previous step."""

    def test_february_of_common_year(self):
        context = ctx(RentDraft(start_year=2027, start_month=2))
        assert v.start_day("28", context) == "28.02.2027"
        result = reason(v.start_day, "29", context)
        assert result.args == (1, 28)

    def test_february_of_leap_year(self):
        assert v.start_day("29", ctx(RentDraft(start_year=2028, start_month=2))) == "29.02.2028"


class TestDates:
    def test_today_is_allowed(self):
        assert v.future_date("19.10.2026", ctx()) == "19.10.2026"

    def test_past_date(self):
        assert reason(v.future_date, "18.10.2026").reason == "validation.past_date"

    @pytest.mark.parametrize("raw", ["2026-10-20", "31.02.2027", "tomorrow"])
    def test_invalid_format(self, raw):
        assert reason(v.future_date, raw).reason == "validation.invalid_date"

    @pytest.mark.parametrize("start,months,expected", [
        (date(2026, 1, 31), 1, date(2026, 2, 28)),
        (date(2028, 1, 31), 1, date(2028, 2, 29)),
        (date(2026, 3, 31), -1, date(2026, 2, 28)),
        (date(2026, 11, 15), 14, date(2028, 1, 15)),
    ])
    def test_add_months_clamps_day(self, start, months, expected):
        assert v.add_months(start, months) == expected


class TestChoices:
    def test_yes_no(self):
        assert v.yes_no("yes", ctx()) is True
        assert v.yes_no("no", ctx()) is False
        assert reason(v.yes_no, "maybe").reason == "validation.use_buttons"

    def test_currency(self):
        assert v.currency("EUR", ctx()) == "EUR"
        assert reason(v.currency, "JPY").reason == "validation.use_buttons"

    def test_validator_error_carries_template_args(self):
        with pytest.raises(ValidationError) as exc:
            v.title("x" * 60, ctx())
        assert exc.value.reason == "validation.title_too_long"
        assert exc.value.args_ == (50,)
