"""
Operator alerts — the error channel the conversation engine reports to.

Every report is logged; when admin Telegram IDs are configured the same
event is also sent to each admin as a direct message. Sending an alert
never raises.
"""

import logging
from typing import Any

from aiogram import Bot

from agreement_bot.i18n.catalog import localize

logger = logging.getLogger(__name__)


class AdminAlertReporter:
    def __init__(self, bot: Bot | None, admin_ids: set[int], language: str = "en") -> None:
        self._bot = bot
        self._admin_ids = admin_ids
        self._language = language

    async def report(self, event: str, error: BaseException, context: dict[str, Any]) -> None:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        logger.error("Operator alert [%s]: %r (%s)", event, error, details)
        if not self._bot or not self._admin_ids:
            return

        cause = error.__cause__ or error
        text = localize(self._language, "admin.alert", event, repr(cause)[:500], details)
        for admin_id in self._admin_ids:
            try:
                await self._bot.send_message(chat_id=admin_id, text=text)
            except Exception:
                logger.exception("Failed to deliver alert to admin %d", admin_id)
