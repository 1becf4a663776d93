from __future__ import annotations

import asyncio
import sqlite3
from typing import Dict, Sequence

from domain.errors import ConstraintViolation, StoreUnavailable
from domain.repositories import BalanceUpdate, TransactionalBalanceRepository


class SqliteBalanceRepository(TransactionalBalanceRepository):
    """
    SQLite-backed implementation of `TransactionalBalanceRepository`.

    This repository owns the `balances` table. Rows are created on first
    write; a missing row reads as 0. The CHECK constraint is the last line
    against negative balances.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS balances (
                    account_id TEXT PRIMARY KEY,
                    amount INTEGER NOT NULL DEFAULT 0 CHECK (amount >= 0)
                )
                """
            )
            conn.commit()

    @staticmethod
    def _select_amount(cur: sqlite3.Cursor, account_id: str) -> int:
        cur.execute("SELECT amount FROM balances WHERE account_id = ?", (account_id,))
        row = cur.fetchone()
        if not row:
            return 0
        return int(row[0])

    @staticmethod
    def _upsert_amount(cur: sqlite3.Cursor, account_id: str, amount: int) -> None:
        cur.execute(
            """
            INSERT INTO balances (account_id, amount)
            VALUES (?, ?)
            ON CONFLICT (account_id)
            DO UPDATE SET amount = excluded.amount
            """,
            (account_id, amount),
        )

    def _get_balance(self, account_id: str) -> int:
        with self._get_connection() as conn:
            return self._select_amount(conn.cursor(), account_id)

    def _set_balance(self, account_id: str, amount: int) -> None:
        with self._get_connection() as conn:
            self._upsert_amount(conn.cursor(), account_id, amount)
            conn.commit()

    def _run_transaction(
        self,
        account_ids: Sequence[str],
        update: BalanceUpdate,
    ) -> Dict[str, int]:
        conn = self._get_connection()
        # Autocommit mode so BEGIN/COMMIT below are the only transaction.
        conn.isolation_level = None
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                current = {a: self._select_amount(cur, a) for a in account_ids}
                new_values = update(dict(current))
                for account_id, amount in new_values.items():
                    self._upsert_amount(cur, account_id, amount)
            except BaseException:
                if conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")
            return dict(new_values)
        finally:
            conn.close()

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolation(f"balance store rejected write: {exc}") from exc
        except OverflowError as exc:
            raise ConstraintViolation(f"balance out of range: {exc}") from exc
        except sqlite3.OperationalError as exc:
            raise StoreUnavailable(f"balance store unavailable: {exc}") from exc

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
