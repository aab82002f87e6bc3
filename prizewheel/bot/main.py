import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramNetworkError
from ..config import BOT_TOKEN, FORCE_RESEED, LOG_LEVEL
from ..db import SessionLocal, create_schema, engine
from ..prizes import seed_prize_slots
from .handlers import router


log = logging.getLogger(__name__)

async def main():
    if not BOT_TOKEN:
        raise RuntimeError("BOT_TOKEN is empty. Put BOT_TOKEN into .env or environment variables.")

    create_schema(engine)
    with SessionLocal() as db:
        seed_prize_slots(db, force=FORCE_RESEED)
        db.commit()

    bot = Bot(
        token=BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )

    dp = Dispatcher()
    dp.include_router(router)

    # If webhook was ever set, remove it so polling works everywhere
    try:
        await bot.delete_webhook(drop_pending_updates=True)
    except TelegramNetworkError as e:
        log.warning("delete_webhook failed, continuing with polling: %s", e)

    try:
        await dp.start_polling(
            bot,
            allowed_updates=dp.resolve_used_update_types(),
            polling_timeout=60,
        )
    except TelegramNetworkError as e:
        # Let the process manager (systemd/pm2/docker) restart it, but keep message clear in logs.
        log.exception("TelegramNetworkError (polling). Check network / proxy: %s", e)
        raise
    finally:
        await bot.session.close()

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL)
    asyncio.run(main())
