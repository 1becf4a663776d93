import asyncio
import logging

from config import (
    build_balance_repository,
    build_link_repository,
    configure_logging,
    load_settings,
)
from infrastructure.http.balance_api_client import HttpBalanceRepository
from interfaces.discord.handlers import create_discord_bot

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    link_repo = build_link_repository(settings)
    balance_repo = build_balance_repository(settings)

    bot = create_discord_bot(
        link_repo,
        balance_repo,
        command_prefix=settings.command_prefix,
        store_timeout=settings.store_timeout,
    )
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if isinstance(balance_repo, HttpBalanceRepository):
            await balance_repo.close()


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.discord_token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    logger.info("Starting Discord bot with %s balance backend", settings.balance_backend)
    asyncio.run(_run(settings))


if __name__ == "__main__":
    main()
