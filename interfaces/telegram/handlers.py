from __future__ import annotations

import logging

from telebot import util
from telebot.async_telebot import AsyncTeleBot

from application.services import (
    DEFAULT_STORE_TIMEOUT,
    ExternalContext,
    get_balance_for,
    register_account,
    transfer,
    unregister_account,
)
from domain.repositories import BalanceRepository, IdentityLinkRepository
from interfaces.messages import (
    render_balance_result,
    render_help,
    render_register_result,
    render_transfer_result,
    render_unregister_result,
)

logger = logging.getLogger(__name__)


def _build_external_context(message) -> ExternalContext:
    """Extract a channel-agnostic context object from a Telegram message."""

    first_name = message.from_user.first_name or ""
    last_name = message.from_user.last_name or ""
    return ExternalContext(
        provider="telegram",
        provider_user_id=str(message.from_user.id),
        display_name=f"{first_name} {last_name}".strip(),
    )


def create_telegram_bot(
    bot_token: str,
    link_repo: IdentityLinkRepository,
    balance_repo: BalanceRepository,
    store_timeout: float = DEFAULT_STORE_TIMEOUT,
) -> AsyncTeleBot:
    """
    Configure and return an AsyncTeleBot instance wired to the application layer.

    This module contains only Telegram-specific concerns: parsing Telegram
    messages and mapping them to/from application services.
    """

    bot = AsyncTeleBot(bot_token)

    @bot.message_handler(commands=["start", "hello"])
    async def handle_start(message):
        await bot.send_message(
            message.chat.id,
            "Welcome to the balance bot!\n"
            "Use /register to link your account, then /bal and /pay.\n"
            "Type /help to see available commands.",
        )

    @bot.message_handler(commands=["help"])
    async def handle_help(message):
        await bot.send_message(message.chat.id, render_help("/"))

    @bot.message_handler(commands=["register"])
    async def handle_register(message):
        args = (util.extract_arguments(message.text) or "").split()
        if not args:
            await bot.send_message(message.chat.id, "Usage: /register <account_id>")
            return

        result = await register_account(
            _build_external_context(message),
            args[0],
            link_repo,
            timeout=store_timeout,
        )
        await bot.send_message(message.chat.id, render_register_result(result, "/"))

    @bot.message_handler(commands=["unregister"])
    async def handle_unregister(message):
        result = await unregister_account(
            _build_external_context(message),
            link_repo,
            timeout=store_timeout,
        )
        await bot.send_message(message.chat.id, render_unregister_result(result, "/"))

    @bot.message_handler(commands=["bal"])
    async def handle_balance(message):
        result = await get_balance_for(
            _build_external_context(message),
            link_repo,
            balance_repo,
            timeout=store_timeout,
        )
        await bot.send_message(message.chat.id, render_balance_result(result, "/"))

    @bot.message_handler(commands=["pay"])
    async def handle_pay(message):
        args = (util.extract_arguments(message.text) or "").split()
        if len(args) < 2:
            await bot.send_message(message.chat.id, "Usage: /pay <account_id> <amount>")
            return

        external_ctx = _build_external_context(message)
        logger.info(
            "pay: telegram user %s -> account %s (%s)",
            external_ctx.provider_user_id,
            args[0],
            args[1],
        )
        result = await transfer(
            external_ctx,
            args[0],
            args[1],
            link_repo,
            balance_repo,
            timeout=store_timeout,
        )
        await bot.send_message(message.chat.id, render_transfer_result(result, "/"))

    return bot
