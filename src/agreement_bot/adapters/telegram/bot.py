"""
Telegram adapter — implements PlatformAdapter using aiogram 3.x.

Wires the conversation engine to Telegram:
  - one Bot (TELEGRAM_BOT_TOKEN) polled by one Dispatcher
  - FlowRouter backed by the PostgreSQL store and agreement repository
  - operator alerts sent to ADMIN_TELEGRAM_IDS
  - AgreementService for /list and ReminderService for reminder buttons
  - the reminder dispatch job and the expired-state reaper started
    alongside polling
"""

import logging

from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramForbiddenError
from aiogram.types import BotCommand, BotCommandScopeAllPrivateChats

from agreement_bot.adapters.base import OutgoingMessage, PlatformAdapter
from agreement_bot.adapters.telegram.handlers import router as handlers_router
from agreement_bot.adapters.telegram.keyboards import to_markup
from agreement_bot.adapters.telegram.middleware import LocaleMiddleware
from agreement_bot.config import settings
from agreement_bot.core.agreement_service import AgreementService
from agreement_bot.core.errors import DeliveryError
from agreement_bot.core.expiry import ExpiryPolicy
from agreement_bot.core.reminder_service import ReminderService
from agreement_bot.core.router import FlowRouter
from agreement_bot.core.scheduler import start_scheduler, stop_scheduler
from agreement_bot.db.store import SqlAgreementRepository, SqlConversationStore, SqlReminderRepository
from agreement_bot.i18n.catalog import localize
from agreement_bot.services.alerts import AdminAlertReporter

logger = logging.getLogger(__name__)

PARSE_MODES = {
    "html": "HTML",
    "markdown": "MarkdownV2",
    "plain": None,
}


def build_flow_router(
    bot: Bot | None, store: SqlConversationStore, repository: SqlAgreementRepository | None = None,
) -> FlowRouter:
    """FlowRouter with the production collaborators and settings applied."""
    return FlowRouter(
        store=store,
        repository=repository or SqlAgreementRepository(),
        localize=localize,
        reporter=AdminAlertReporter(bot, settings.admin_ids),
        expiry=ExpiryPolicy(
            ttl_minutes=settings.state_ttl_minutes,
            timezone_name=settings.default_timezone,
        ),
        max_reminders=settings.max_reminders_per_agreement,
        default_locale=settings.default_language,
    )


class TelegramAdapter(PlatformAdapter):
    """Telegram implementation of the platform adapter."""

    def __init__(self, token: str | None = None) -> None:
        token = token or settings.telegram_bot_token
        if not token:
            raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

        self.bot = Bot(token=token)
        self.store = SqlConversationStore()
        repository = SqlAgreementRepository()
        reporter = AdminAlertReporter(self.bot, settings.admin_ids)
        self.flow_router = build_flow_router(self.bot, self.store, repository)
        self.agreement_service = AgreementService(
            repository, localize, reporter, default_locale=settings.default_language,
        )
        self.reminder_service = ReminderService(
            SqlReminderRepository(),
            localize,
            reporter,
            timezone_name=settings.default_timezone,
            send_hours=(settings.reminder_send_start_hour, settings.reminder_send_end_hour),
            batch_size=settings.reminder_batch_size,
            default_locale=settings.default_language,
        )

        self.dp = Dispatcher()
        self.dp["flow_router"] = self.flow_router
        self.dp["agreement_service"] = self.agreement_service
        self.dp["reminder_service"] = self.reminder_service
        self.dp["adapter"] = self
        self._register_routers()

    def _register_routers(self) -> None:
        """Attach handler routers and middleware to the dispatcher."""
        self.dp.message.outer_middleware(LocaleMiddleware())
        self.dp.callback_query.outer_middleware(LocaleMiddleware())
        self.dp.include_router(handlers_router)

    async def send_message(self, message: OutgoingMessage) -> None:
        """Send a text message via Telegram."""
        await self.bot.send_message(
            chat_id=int(message.chat_id),
            text=message.text,
            parse_mode=PARSE_MODES.get(message.format_type),
            reply_markup=to_markup(message.buttons),
            message_thread_id=message.thread_id,
        )

    async def edit_message(self, message: OutgoingMessage) -> None:
        """Edit an existing Telegram message."""
        if message.edit_message_id is None:
            logger.warning("edit_message called without edit_message_id")
            return

        await self.bot.edit_message_text(
            chat_id=int(message.chat_id),
            message_id=int(message.edit_message_id),
            text=message.text,
            parse_mode=PARSE_MODES.get(message.format_type),
            reply_markup=to_markup(message.buttons),
        )

    async def deliver(self, messages: list[OutgoingMessage]) -> None:
        """Send or edit each message. Delivery errors are logged, never raised."""
        for message in messages:
            try:
                if message.edit_message_id:
                    await self.edit_message(message)
                else:
                    await self.send_message(message)
            except TelegramAPIError:
                logger.exception("Failed to deliver message to chat %s", message.chat_id)

    async def send_reminder(self, message: OutgoingMessage) -> None:
        """Send one scheduled reminder, mapping Telegram failures to DeliveryError."""
        try:
            await self.send_message(message)
        except TelegramForbiddenError as e:
            raise DeliveryError(str(e), permanent=True) from e
        except TelegramBadRequest as e:
            raise DeliveryError(str(e), permanent="chat not found" in str(e).lower()) from e
        except TelegramAPIError as e:
            raise DeliveryError(str(e)) from e

    async def start(self) -> None:
        """Start polling for Telegram updates and launch the scheduler."""
        logger.info("Starting Telegram bot (polling mode)...")
        me = await self.bot.me()
        logger.info("Bot identity: @%s (id=%d)", me.username, me.id)

        await self._set_commands()

        start_scheduler(
            self.store,
            interval_minutes=settings.state_reaper_interval_minutes,
            reminders=self.reminder_service,
            send=self.send_reminder,
            reminder_interval_minutes=settings.reminder_check_interval_minutes,
        )
        logger.info("Background scheduler started")

        await self.dp.start_polling(self.bot)

    async def _set_commands(self) -> None:
        """Register the command menu for private chats in the default language."""
        t = localize
        lang = settings.default_language
        commands = [
            BotCommand(command="start", description=t(lang, "menu.title")),
            BotCommand(command="list", description=t(lang, "list.header")),
            BotCommand(command="cancel", description=t(lang, "buttons.cancel")),
            BotCommand(command="language", description=t(lang, "language.prompt")),
        ]
        try:
            await self.bot.set_my_commands(commands, scope=BotCommandScopeAllPrivateChats())
        except TelegramAPIError as e:
            logger.warning("Failed to set bot commands: %s", e)

    async def stop(self) -> None:
        """Shut down the bot session and the scheduler gracefully."""
        logger.info("Stopping Telegram bot...")
        stop_scheduler()
        await self.bot.session.close()
