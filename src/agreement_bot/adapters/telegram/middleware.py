"""
Telegram middleware that registers the user and resolves their language.

Runs before every message and callback handler and injects:
  - `locale` — the user's stored language (or the configured default)

The first update from a user creates their agreement_users row, so the
rest of the bot can assume the user exists.

Usage in handlers:
    @router.message(Command("list"))
    async def cmd_list(message: Message, locale: str):
        ...
"""

import logging
from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject
from sqlalchemy.exc import SQLAlchemyError

from agreement_bot.config import settings
from agreement_bot.db.repositories import get_or_create_user
from agreement_bot.db.session import get_session

logger = logging.getLogger(__name__)


class LocaleMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        tg_user = None
        chat_id = None

        if isinstance(event, Message):
            tg_user = event.from_user
            chat_id = event.chat.id
        elif isinstance(event, CallbackQuery):
            tg_user = event.from_user
            if event.message:
                chat_id = event.message.chat.id

        data["locale"] = settings.default_language
        if tg_user is None:
            return await handler(event, data)

        try:
            async with get_session() as session:
                user = await get_or_create_user(
                    session,
                    telegram_user_id=tg_user.id,
                    telegram_chat_id=chat_id,
                    username=tg_user.username,
                    first_name=tg_user.first_name,
                )
                data["locale"] = user.language
        except SQLAlchemyError as e:
            # Keep serving with the default language; the router reports storage failures itself
            logger.error("LocaleMiddleware: cannot load user %d: %s", tg_user.id, e)

        return await handler(event, data)
