import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from authflow.config import BotSettings

from .handlers import router
from .botlogic_api import BotLogicAPI

logger = logging.getLogger(__name__)


async def main():
    settings = BotSettings()
    logging.basicConfig(level=settings.LOG_LEVEL)

    bot = Bot(token=settings.BOT_TOKEN)
    # FSM тут только для ввода логина; шаги сброса пароля хранит botlogic
    dp = Dispatcher(storage=MemoryStorage())

    api = BotLogicAPI(settings.BOTLOGIC_BASE_URL, settings.HTTP_TIMEOUT_SEC)
    dp["api"] = api
    dp.include_router(router)

    logger.info("Starting bot, botlogic at %s", settings.BOTLOGIC_BASE_URL)
    await dp.start_polling(bot, api=api)


if __name__ == "__main__":
    asyncio.run(main())
