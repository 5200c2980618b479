import asyncio
import logging

from aiogram import Bot, Dispatcher

from feedesk.bot.handlers import admin_payments as admin_payments_handlers
from feedesk.bot.middlewares.correlation import CorrelationMiddleware
from feedesk.config import settings
from feedesk.logging_config import setup_logging
from feedesk.payment.manual_transfer import ManualPaymentReviewer
from feedesk.services.notifications import NotificationDispatcher, aclose_bot


async def main() -> None:
    setup_logging()

    token = settings.telegram_bot_token
    if not token:
        logging.error("TELEGRAM_BOT_TOKEN is not set. Put it in the .env file.")
        raise SystemExit(1)
    if not settings.telegram_admin_ids:
        logging.warning("TELEGRAM_ADMIN_IDS is empty; nobody can review payments")

    bot = Bot(token=token)
    dp = Dispatcher()

    # Correlation id middleware for observability
    corr = CorrelationMiddleware()
    dp.message.middleware(corr)
    dp.callback_query.middleware(corr)

    dispatcher = NotificationDispatcher()
    admin_payments_handlers.configure_reviewer(ManualPaymentReviewer(dispatcher=dispatcher))
    dp.include_router(admin_payments_handlers.router)

    logging.info("Starting Telegram bot polling ...", extra={"extra": {"env": settings.app_env}})
    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot)
    finally:
        # Let in-flight notifications finish before the HTTP clients go away
        try:
            await dispatcher.aclose()
        except Exception:
            logging.exception("notification dispatcher shutdown failed")
        try:
            await aclose_bot()
        except Exception:
            pass
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
