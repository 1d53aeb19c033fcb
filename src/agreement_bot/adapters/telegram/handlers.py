"""
Telegram message handlers.

Each handler converts Telegram-specific objects into plain values and
delegates to the flow router. This keeps business rules out of the
adapter layer: handlers only pick the entry point and deliver whatever
messages come back.

The dispatcher provides these workflow objects to every handler:
  - `flow_router`       — the FlowRouter driving conversations
  - `agreement_service` — /list and the agreement detail and delete buttons
  - `reminder_service`  — done and snooze buttons on delivered reminders
  - `adapter`           — the TelegramAdapter used for delivery
and the LocaleMiddleware adds `locale`.
"""

import logging
from functools import partial
from typing import TYPE_CHECKING

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message
from sqlalchemy.exc import SQLAlchemyError

from agreement_bot.adapters.base import OutgoingMessage
from agreement_bot.adapters.telegram.keyboards import LANGUAGES, language_keyboard, to_markup
from agreement_bot.core.agreement_service import AgreementService
from agreement_bot.core.outcomes import ActionReply
from agreement_bot.core.prompts import main_menu_rows
from agreement_bot.core.reminder_service import ReminderService
from agreement_bot.core.router import FlowRouter
from agreement_bot.core.states import (
    AGREEMENT_TOKEN_PREFIX,
    MENU_CUSTOM_TOKEN,
    MENU_RENT_TOKEN,
    REMINDER_TOKEN_PREFIX,
)
from agreement_bot.db.repositories import set_user_language
from agreement_bot.db.session import get_session
from agreement_bot.i18n.catalog import localize

if TYPE_CHECKING:
    from agreement_bot.adapters.telegram.bot import TelegramAdapter

logger = logging.getLogger(__name__)
router = Router(name="agreement_handlers")

# Conversations run in private chats only
router.message.filter(F.chat.type == "private")


def _thread_id(message: Message) -> int | None:
    return message.message_thread_id if message.is_topic_message else None


# ── Commands ─────────────────────────────────────────────────


@router.message(CommandStart())
async def handle_start(message: Message, locale: str, adapter: "TelegramAdapter") -> None:
    """/start — greet the user and show the main menu."""
    tg_user = message.from_user
    if tg_user is None:
        return
    t = partial(localize, locale)
    logger.info("User %d sent /start", tg_user.id)
    await adapter.deliver([OutgoingMessage(
        chat_id=str(message.chat.id),
        text=t("start.welcome", tg_user.first_name or ""),
        buttons=main_menu_rows(t),
        thread_id=_thread_id(message),
    )])


@router.message(Command("menu"))
async def cmd_menu(message: Message, locale: str, adapter: "TelegramAdapter") -> None:
    t = partial(localize, locale)
    await adapter.deliver([OutgoingMessage(
        chat_id=str(message.chat.id),
        text=t("menu.title"),
        buttons=main_menu_rows(t),
        thread_id=_thread_id(message),
    )])


@router.message(Command("cancel"))
async def cmd_cancel(
    message: Message, locale: str, flow_router: FlowRouter, adapter: "TelegramAdapter",
) -> None:
    """/cancel — drop the current flow (harmless when there is none)."""
    if message.from_user is None:
        return
    outcome = await flow_router.cancel(message.from_user.id)
    await adapter.deliver(flow_router.render(outcome, str(message.chat.id), _thread_id(message), locale))


@router.message(Command(MENU_RENT_TOKEN, MENU_CUSTOM_TOKEN))
async def cmd_start_flow(
    message: Message,
    command: CommandObject,
    locale: str,
    flow_router: FlowRouter,
    adapter: "TelegramAdapter",
) -> None:
    """/menu:rent, /menu:custom — typed form of the main menu buttons."""
    if message.from_user is None:
        return
    messages = await flow_router.on_callback(
        user_id=message.from_user.id,
        chat_id=str(message.chat.id),
        thread_id=_thread_id(message),
        locale=locale,
        token=command.command,
    )
    await adapter.deliver(messages)


@router.message(Command("list"))
async def cmd_list(
    message: Message, locale: str, agreement_service: AgreementService, adapter: "TelegramAdapter",
) -> None:
    """/list — the user's agreements, one message each with details and delete buttons."""
    if message.from_user is None:
        return
    prompts = await agreement_service.list_agreements(message.from_user.id, locale)
    await adapter.deliver([
        OutgoingMessage(
            chat_id=str(message.chat.id),
            text=prompt.text,
            buttons=prompt.buttons,
            thread_id=_thread_id(message),
        )
        for prompt in prompts
    ])


@router.message(Command("language"))
async def cmd_language(message: Message, locale: str) -> None:
    t = partial(localize, locale)
    await message.answer(t("language.prompt"), reply_markup=language_keyboard(t))


@router.callback_query(F.data.startswith("lang:"))
async def cb_language(callback: CallbackQuery) -> None:
    language = (callback.data or "").removeprefix("lang:")
    if language not in LANGUAGES:
        await callback.answer()
        return

    try:
        async with get_session() as session:
            await set_user_language(session, callback.from_user.id, language)
    except SQLAlchemyError:
        logger.exception("Failed to store language for user %d", callback.from_user.id)
        await callback.answer(localize(language, "errors.persistence"), show_alert=True)
        return

    await callback.answer()
    if isinstance(callback.message, Message):
        await callback.message.edit_text(localize(language, "language.changed"))


# ── Agreement and reminder buttons ───────────────────────────


@router.callback_query(F.data.startswith(AGREEMENT_TOKEN_PREFIX))
async def cb_agreement(
    callback: CallbackQuery, locale: str, agreement_service: AgreementService, adapter: "TelegramAdapter",
) -> None:
    reply = await agreement_service.on_callback(callback.from_user.id, locale, callback.data or "")
    await _answer_action(callback, reply, adapter)


@router.callback_query(F.data.startswith(REMINDER_TOKEN_PREFIX))
async def cb_reminder(
    callback: CallbackQuery, locale: str, reminder_service: ReminderService, adapter: "TelegramAdapter",
) -> None:
    reply = await reminder_service.on_callback(callback.from_user.id, locale, callback.data or "")
    await _answer_action(callback, reply, adapter)


async def _answer_action(callback: CallbackQuery, reply: ActionReply, adapter: "TelegramAdapter") -> None:
    """Show the notice, then rewrite the pressed message or just its keyboard."""
    await callback.answer(reply.notice)
    source = callback.message if isinstance(callback.message, Message) else None

    if reply.prompt is not None:
        await adapter.deliver([OutgoingMessage(
            chat_id=str(source.chat.id) if source else str(callback.from_user.id),
            text=reply.prompt.text,
            buttons=reply.prompt.buttons,
            thread_id=_thread_id(source) if source else None,
            edit_message_id=str(source.message_id) if source else None,
        )])
        return

    if source is None or (reply.buttons is None and not reply.clear_buttons):
        return
    try:
        await source.edit_reply_markup(reply_markup=to_markup(reply.buttons))
    except TelegramBadRequest as e:
        logger.debug("Could not update keyboard on message %d: %s", source.message_id, e)


# ── Conversation input ───────────────────────────────────────


@router.message(F.text & ~F.text.startswith("/"))
async def handle_text(
    message: Message, locale: str, flow_router: FlowRouter, adapter: "TelegramAdapter",
) -> None:
    """Any plain text is an answer to the current step."""
    if message.from_user is None or message.text is None:
        return
    messages = await flow_router.on_text(
        user_id=message.from_user.id,
        chat_id=str(message.chat.id),
        thread_id=_thread_id(message),
        locale=locale,
        text=message.text,
    )
    await adapter.deliver(messages)


@router.callback_query()
async def handle_callback(
    callback: CallbackQuery, locale: str, flow_router: FlowRouter, adapter: "TelegramAdapter",
) -> None:
    """
    Any other button press goes to the flow router.

    The pressed message loses its keyboard unless the reply edits that
    same message (calendar paging), so old buttons cannot be pressed twice.
    """
    source = callback.message if isinstance(callback.message, Message) else None
    chat_id = str(source.chat.id) if source else str(callback.from_user.id)
    messages = await flow_router.on_callback(
        user_id=callback.from_user.id,
        chat_id=chat_id,
        thread_id=_thread_id(source) if source else None,
        locale=locale,
        token=callback.data or "",
        message_id=str(source.message_id) if source else None,
    )
    await callback.answer()

    edits_source = any(m.edit_message_id for m in messages)
    if source and messages and not edits_source:
        try:
            await source.edit_reply_markup(reply_markup=None)
        except TelegramBadRequest as e:
            logger.debug("Could not clear keyboard on message %d: %s", source.message_id, e)

    await adapter.deliver(messages)
