from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from domain.repositories import BalanceRepository, IdentityLinkRepository

BACKENDS = ("sqlite", "postgres", "http")


@dataclass
class Settings:
    discord_token: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    db_path: str = "balances.db"
    balance_backend: str = "sqlite"
    database_url: Optional[str] = None
    balance_api_base: Optional[str] = None
    balance_api_key: Optional[str] = None
    store_timeout: float = 10.0
    log_level: str = "INFO"
    command_prefix: str = "!"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from the environment (and a `.env` file, if present).
    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    backend = environ.get("BALANCE_BACKEND", "sqlite").strip().lower()
    if backend not in BACKENDS:
        raise RuntimeError(
            f"BALANCE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}."
        )

    timeout_raw = environ.get("STORE_TIMEOUT_SECONDS", "10")
    try:
        store_timeout = float(timeout_raw)
    except ValueError as exc:
        raise RuntimeError(f"STORE_TIMEOUT_SECONDS is not a number: {timeout_raw!r}") from exc

    return Settings(
        discord_token=environ.get("DISCORD_TOKEN"),
        telegram_bot_token=environ.get("TELEGRAM_BOT_TOKEN"),
        db_path=environ.get("DB_PATH", "balances.db"),
        balance_backend=backend,
        database_url=environ.get("DATABASE_URL"),
        balance_api_base=environ.get("BALANCE_API_BASE"),
        balance_api_key=environ.get("BALANCE_API_KEY"),
        store_timeout=store_timeout,
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        command_prefix=environ.get("COMMAND_PREFIX", "!"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def build_link_repository(settings: Settings) -> IdentityLinkRepository:
    if settings.balance_backend == "postgres":
        from infrastructure.db.link_repository_postgres import PostgresIdentityLinkRepository

        return PostgresIdentityLinkRepository(_require(settings.database_url, "DATABASE_URL"))

    # The remote balance API has no registration endpoint; links stay local.
    from infrastructure.db.link_repository_sqlite import SqliteIdentityLinkRepository

    return SqliteIdentityLinkRepository(settings.db_path)


def build_balance_repository(settings: Settings) -> BalanceRepository:
    if settings.balance_backend == "postgres":
        from infrastructure.db.balance_repository_postgres import PostgresBalanceRepository

        return PostgresBalanceRepository(_require(settings.database_url, "DATABASE_URL"))

    if settings.balance_backend == "http":
        from infrastructure.http.balance_api_client import HttpBalanceRepository

        return HttpBalanceRepository(
            _require(settings.balance_api_base, "BALANCE_API_BASE"),
            api_key=settings.balance_api_key,
            request_timeout=settings.store_timeout,
        )

    from infrastructure.db.balance_repository_sqlite import SqliteBalanceRepository

    return SqliteBalanceRepository(settings.db_path)


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise RuntimeError(f"{name} environment variable is not set.")
    return value
