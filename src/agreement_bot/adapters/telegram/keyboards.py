"""
Telegram inline keyboard builders.

The conversation engine describes buttons as platform-agnostic
``ButtonOption`` rows; these helpers turn them into aiogram
InlineKeyboardMarkup objects and build the language keyboard of /language.
"""

from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from agreement_bot.adapters.base import ButtonOption
from agreement_bot.core.prompts import Translator

LANGUAGES = ("tr", "en")


def to_markup(rows: Sequence[Sequence[ButtonOption]] | None) -> InlineKeyboardMarkup | None:
    """ButtonOption rows → inline keyboard (None when there are no buttons)."""
    if not rows:
        return None
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=b.label, callback_data=b.callback_data) for b in row]
        for row in rows
    ])


def language_keyboard(t: Translator) -> InlineKeyboardMarkup:
    """One button per supported language."""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=t(f"language.{code}"), callback_data=f"lang:{code}") for code in LANGUAGES],
    ])
