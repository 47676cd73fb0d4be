"""Telegram polling entrypoint (`voice-task-bot`)."""

from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from src.app import App, create_app
from src.bot.router import router
from src.config.logging import configure_logging
from src.config.settings import load_settings
from src.db.pool import open_pool

logger = logging.getLogger(__name__)


def build_dispatcher(app: App) -> Dispatcher:
    """Dispatcher with the command router; `app` reaches handlers as a keyword argument."""

    dp = Dispatcher(app=app)
    dp.include_router(router)

    async def on_startup() -> None:
        await open_pool(app.pool)
        logger.info("bot started llm_enabled=%s", app.settings.llm_enabled)

    async def on_shutdown() -> None:
        await app.pool.close()
        logger.info("bot stopped")

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)
    return dp


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is required to run the bot")

    app = create_app(settings)
    bot = Bot(token=settings.telegram_bot_token, default=DefaultBotProperties(parse_mode=None))
    async with bot:
        await build_dispatcher(app).start_polling(bot)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
