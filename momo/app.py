import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from .bot.config import Settings
from .bot.logging_setup import setup_logging
from .bot.routers import start, payments, chat_member
from .bot.db.init_db import init_db
from .bot.jobs.recovery import resume_unfinished_payments
from .bot.services.flows import FlowRegistry


async def main() -> None:
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)

    if not settings.BOT_TOKEN:
        raise RuntimeError("BOT_TOKEN is not set")

    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode="HTML"),
    )

    flows = FlowRegistry(settings)

    dp = Dispatcher(storage=MemoryStorage())
    dp["settings"] = settings
    dp["flows"] = flows

    dp.include_router(start.router)
    dp.include_router(payments.router)
    dp.include_router(chat_member.router)

    await init_db(settings.db_path_abs)
    await resume_unfinished_payments(bot, settings, flows)

    try:
        await dp.start_polling(bot)
    finally:
        flows.close_all()
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
