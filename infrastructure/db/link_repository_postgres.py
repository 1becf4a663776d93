from __future__ import annotations

import asyncio
from typing import Optional

import psycopg2

from domain.errors import StoreUnavailable
from domain.models import IdentityLink
from domain.repositories import IdentityLinkRepository


class PostgresIdentityLinkRepository(IdentityLinkRepository):
    """
    Postgres-backed implementation of `IdentityLinkRepository`.

    Uses a dedicated `identity_links` table keyed by (provider, caller_id).
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(self._dsn)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS identity_links (
                        provider TEXT NOT NULL,
                        caller_id TEXT NOT NULL,
                        account_id TEXT NOT NULL,
                        PRIMARY KEY (provider, caller_id)
                    )
                    """
                )
                conn.commit()

    def _resolve_account(self, provider: str, caller_id: str) -> Optional[str]:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT account_id
                    FROM identity_links
                    WHERE provider = %s AND caller_id = %s
                    """,
                    (provider, caller_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
                return str(row[0])

    def _set_link(self, provider: str, caller_id: str, account_id: str) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO identity_links (provider, caller_id, account_id)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (provider, caller_id)
                    DO UPDATE SET account_id = EXCLUDED.account_id
                    """,
                    (provider, caller_id, account_id),
                )
                conn.commit()

    def _clear_link(self, provider: str, caller_id: str) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM identity_links WHERE provider = %s AND caller_id = %s",
                    (provider, caller_id),
                )
                conn.commit()

    def _count_links(self) -> int:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM identity_links")
                return int(cur.fetchone()[0])

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except psycopg2.OperationalError as exc:
            raise StoreUnavailable(f"link store unavailable: {exc}") from exc
        except psycopg2.Error as exc:
            raise StoreUnavailable(f"link store error: {exc}") from exc

    async def resolve_account(self, provider: str, caller_id: str) -> Optional[str]:
        return await self._run(self._resolve_account, provider, caller_id)

    async def set_link(self, link: IdentityLink) -> None:
        await self._run(self._set_link, link.provider, link.caller_id, link.account_id)

    async def clear_link(self, provider: str, caller_id: str) -> None:
        await self._run(self._clear_link, provider, caller_id)

    async def count_links(self) -> int:
        return await self._run(self._count_links)
