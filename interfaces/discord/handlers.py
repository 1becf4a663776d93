from __future__ import annotations

import logging

import discord
from discord.ext import commands

from application.services import (
    DEFAULT_STORE_TIMEOUT,
    ExternalContext,
    credit_account,
    get_balance_for,
    register_account,
    transfer,
    unregister_account,
)
from domain.repositories import BalanceRepository, IdentityLinkRepository
from interfaces.messages import (
    render_balance_result,
    render_credit_result,
    render_help,
    render_register_result,
    render_transfer_result,
    render_unregister_result,
)

logger = logging.getLogger(__name__)


def _build_external_context(user: discord.abc.User) -> ExternalContext:
    """Create an `ExternalContext` from a Discord user."""

    return ExternalContext(
        provider="discord",
        provider_user_id=str(user.id),
        display_name=user.display_name or user.name,
    )


def create_discord_bot(
    link_repo: IdentityLinkRepository,
    balance_repo: BalanceRepository,
    command_prefix: str = "!",
    store_timeout: float = DEFAULT_STORE_TIMEOUT,
) -> commands.Bot:
    """
    Configure and return a Discord bot exposing register / unregister / bal / pay, plus
    an administrator-only credit command.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix=command_prefix, intents=intents, help_command=None)

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)
        logger.info("Bot is active in %s servers", len(bot.guilds))

    @bot.event
    async def on_guild_join(guild: discord.Guild):
        logger.info("Joined new server: %s (%s)", guild.name, guild.id)

    @bot.event
    async def on_guild_remove(guild: discord.Guild):
        logger.info("Left server: %s (%s)", guild.name, guild.id)

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"Missing argument: {error.param.name}.\n" + render_help(command_prefix))
            return
        if isinstance(error, commands.CheckFailure):
            await ctx.send("You are not allowed to use this command.")
            return
        logger.error(
            "Command %s failed for user %s",
            ctx.command,
            ctx.author.id,
            exc_info=error,
        )
        await ctx.send("An error occurred. Please try again later or contact support.")

    @bot.command(name="start")
    async def start_cmd(ctx: commands.Context):
        await ctx.send(
            "Welcome to the balance bot!\n"
            f"Use {command_prefix}register to link your account, then "
            f"{command_prefix}bal and {command_prefix}pay.\n"
            f"Type {command_prefix}help to see available commands."
        )

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(render_help(command_prefix))

    @bot.command(name="register")
    async def register_cmd(ctx: commands.Context, account_id: str):
        external_ctx = _build_external_context(ctx.author)
        result = await register_account(
            external_ctx,
            account_id,
            link_repo,
            timeout=store_timeout,
        )
        await ctx.send(render_register_result(result, command_prefix))

    @bot.command(name="unregister")
    async def unregister_cmd(ctx: commands.Context):
        result = await unregister_account(
            _build_external_context(ctx.author),
            link_repo,
            timeout=store_timeout,
        )
        await ctx.send(render_unregister_result(result, command_prefix))

    @bot.command(name="bal")
    async def bal_cmd(ctx: commands.Context):
        external_ctx = _build_external_context(ctx.author)
        result = await get_balance_for(
            external_ctx,
            link_repo,
            balance_repo,
            timeout=store_timeout,
        )
        await ctx.send(render_balance_result(result, command_prefix))

    @bot.command(name="pay")
    async def pay_cmd(ctx: commands.Context, recipient_account_id: str, amount: str):
        """
        !pay <account_id> <amount>
        """

        external_ctx = _build_external_context(ctx.author)
        logger.info(
            "pay: discord user %s -> account %s (%s)",
            external_ctx.provider_user_id,
            recipient_account_id,
            amount,
        )
        result = await transfer(
            external_ctx,
            recipient_account_id,
            amount,
            link_repo,
            balance_repo,
            timeout=store_timeout,
        )
        await ctx.send(render_transfer_result(result, command_prefix))

    @bot.command(name="credit")
    @commands.has_permissions(administrator=True)
    async def credit_cmd(ctx: commands.Context, account_id: str, amount: str):
        result = await credit_account(
            account_id,
            amount,
            balance_repo,
            timeout=store_timeout,
        )
        logger.info(
            "credit by discord admin %s: account=%s amount=%s success=%s",
            ctx.author.id,
            account_id,
            amount,
            result.success,
        )
        await ctx.send(render_credit_result(result))

    @bot.command(name="stats")
    async def stats_cmd(ctx: commands.Context):
        registered = await link_repo.count_links()
        await ctx.send(
            f"Servers: {len(bot.guilds)}\n"
            f"Registered users: {registered}"
        )

    return bot
