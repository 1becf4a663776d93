from __future__ import annotations

import asyncio
from typing import Dict, Sequence

import psycopg2

from domain.errors import ConstraintViolation, StoreUnavailable
from domain.repositories import BalanceUpdate, TransactionalBalanceRepository


class PostgresBalanceRepository(TransactionalBalanceRepository):
    """
    Postgres-backed implementation of `TransactionalBalanceRepository`.

    Transactions lock the touched rows with `SELECT ... FOR UPDATE`, always
    in sorted account order so that two transfers over the same pair of
    accounts cannot deadlock each other.
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
                    CREATE TABLE IF NOT EXISTS balances (
                        account_id TEXT PRIMARY KEY,
                        amount BIGINT NOT NULL DEFAULT 0 CHECK (amount >= 0)
                    )
                    """
                )
                conn.commit()

    def _get_balance(self, account_id: str) -> int:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT amount FROM balances WHERE account_id = %s", (account_id,))
                row = cur.fetchone()
                if not row:
                    return 0
                return int(row[0])

    def _set_balance(self, account_id: str, amount: int) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO balances (account_id, amount)
                    VALUES (%s, %s)
                    ON CONFLICT (account_id)
                    DO UPDATE SET amount = EXCLUDED.amount
                    """,
                    (account_id, amount),
                )
                conn.commit()

    def _run_transaction(
        self,
        account_ids: Sequence[str],
        update: BalanceUpdate,
    ) -> Dict[str, int]:
        # The connection context manager commits on success and rolls back
        # on any exception, including one raised by `update`.
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                current: Dict[str, int] = {}
                for account_id in sorted(set(account_ids)):
                    cur.execute(
                        """
                        INSERT INTO balances (account_id, amount)
                        VALUES (%s, 0)
                        ON CONFLICT (account_id) DO NOTHING
                        """,
                        (account_id,),
                    )
                    cur.execute(
                        "SELECT amount FROM balances WHERE account_id = %s FOR UPDATE",
                        (account_id,),
                    )
                    current[account_id] = int(cur.fetchone()[0])

                new_values = update(dict(current))
                for account_id, amount in new_values.items():
                    cur.execute(
                        "UPDATE balances SET amount = %s WHERE account_id = %s",
                        (amount, account_id),
                    )
                return dict(new_values)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except psycopg2.IntegrityError as exc:
            raise ConstraintViolation(f"balance store rejected write: {exc}") from exc
        except psycopg2.DataError as exc:
            # NumericValueOutOfRange and friends.
            raise ConstraintViolation(f"balance out of range: {exc}") from exc
        except psycopg2.OperationalError as exc:
            raise StoreUnavailable(f"balance store unavailable: {exc}") from exc
        except psycopg2.Error as exc:
            raise StoreUnavailable(f"balance store error: {exc}") from exc

    async def get_balance(self, account_id: str) -> int:
        return await self._run(self._get_balance, account_id)

    async def set_balance(self, account_id: str, amount: int) -> None:
        if amount < 0:
            raise ConstraintViolation(f"refusing negative balance {amount} for {account_id}")
        await self._run(self._set_balance, account_id, amount)

    async def run_transaction(
        self,
        account_ids: Sequence[str],
        update: BalanceUpdate,
    ) -> Dict[str, int]:
        return await self._run(self._run_transaction, account_ids, update)
