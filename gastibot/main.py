"""
Main entry point for the Gasti.pro expense bot.
"""

import logging
import sys

from telegram import Update
from telegram.ext import Application

from gastibot.bot.handlers import BotServices, create_application
from gastibot.config import Config
from gastibot.errors import ConfigError


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )
    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


async def post_shutdown(application: Application) -> None:
    """Cleanup on shutdown."""
    services: BotServices = application.bot_data["services"]
    logger.info("Closing HTTP connections...")
    await services.gasti.aclose()
    logger.info("Shutdown complete.")


def main() -> None:
    """Main function to run the bot."""
    configure_logging()

    try:
        config = Config.from_env()
    except ConfigError as e:
        logger.error(f"❌ {e}")
        logger.error("Please set the required environment variables in .env file")
        sys.exit(1)

    configure_logging(config.log_level)
    logger.info("🤖 Starting Gasti.pro Expense Bot...")
    logger.info(f"📂 Token store: {config.token_store_path}")

    config.ensure_data_dir()

    application = create_application(config)
    application.post_shutdown = post_shutdown

    # Updates are processed one at a time; the token slot relies on it
    logger.info("🚀 Bot is running. Press Ctrl+C to stop.")
    application.run_polling(
        allowed_updates=[Update.MESSAGE],
        drop_pending_updates=True,
    )


if __name__ == "__main__":
    main()
