import asyncio
import logging

from config import (
    build_balance_repository,
    build_link_repository,
    configure_logging,
    load_settings,
)
from infrastructure.http.balance_api_client import HttpBalanceRepository
from interfaces.telegram.handlers import create_telegram_bot

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    link_repo = build_link_repository(settings)
    balance_repo = build_balance_repository(settings)

    bot = create_telegram_bot(
        settings.telegram_bot_token,
        link_repo,
        balance_repo,
        store_timeout=settings.store_timeout,
    )
    try:
        await bot.infinity_polling()
    finally:
        await bot.close_session()
        if isinstance(balance_repo, HttpBalanceRepository):
            await balance_repo.close()


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN environment variable is not set.")

    logger.info("Starting Telegram bot with %s balance backend", settings.balance_backend)
    asyncio.run(_run(settings))


if __name__ == "__main__":
    main()
