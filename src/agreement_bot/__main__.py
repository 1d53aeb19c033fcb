"""
Main entry point for the Agreement Bot.

Run with:  python -m agreement_bot
"""

import asyncio
import logging

from agreement_bot.config import settings


def setup_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # aiogram logs every update at INFO
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)


async def main() -> None:
    """Initialize and start the bot."""
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting Agreement Bot...")
    logger.info("Database: %s@%s:%s/%s",
                settings.postgres_user, settings.postgres_host,
                settings.postgres_port, settings.postgres_db)
    logger.info("Conversation TTL: %d min, reminder cap: %d",
                settings.state_ttl_minutes, settings.max_reminders_per_agreement)

    # Import adapter here to avoid loading aiogram before logging is configured
    from agreement_bot.adapters.telegram.bot import TelegramAdapter

    adapter = TelegramAdapter()

    try:
        await adapter.start()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        await adapter.stop()


if __name__ == "__main__":
    asyncio.run(main())
