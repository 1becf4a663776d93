import unittest

import psycopg2

from domain.errors import ConstraintViolation, StoreUnavailable
from infrastructure.db.balance_repository_postgres import PostgresBalanceRepository
from infrastructure.db.link_repository_postgres import PostgresIdentityLinkRepository


def _raiser(exc):
    def run():
        raise exc

    return run


class PostgresErrorMappingTests(unittest.IsolatedAsyncioTestCase):
    """Driver errors are translated at `_run`; no server is needed to check that."""

    def setUp(self) -> None:
        # Skip __init__, which would connect and create tables.
        self.balances = PostgresBalanceRepository.__new__(PostgresBalanceRepository)
        self.links = PostgresIdentityLinkRepository.__new__(PostgresIdentityLinkRepository)

    async def test_closed_connection_is_store_unavailable(self):
        for repo in (self.balances, self.links):
            with self.subTest(repo=type(repo).__name__):
                with self.assertRaises(StoreUnavailable):
                    await repo._run(_raiser(psycopg2.InterfaceError("connection already closed")))

    async def test_operational_error_is_store_unavailable(self):
        with self.assertRaises(StoreUnavailable):
            await self.balances._run(_raiser(psycopg2.OperationalError("server closed")))

    async def test_out_of_range_value_is_constraint_violation(self):
        with self.assertRaises(ConstraintViolation):
            await self.balances._run(_raiser(psycopg2.DataError("bigint out of range")))

    async def test_check_constraint_is_constraint_violation(self):
        with self.assertRaises(ConstraintViolation):
            await self.balances._run(_raiser(psycopg2.IntegrityError("balances_amount_check")))


if __name__ == "__main__":
    unittest.main()
