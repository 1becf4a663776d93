import unittest

from aiohttp import web
from aiohttp import test_utils

from application.services import ErrorCode, TransferStage, transfer_between_accounts
from domain.errors import ConstraintViolation, StoreUnavailable
from domain.repositories import TransactionalBalanceRepository
from infrastructure.http.balance_api_client import HttpBalanceRepository


class FakeBalanceApi:
    """In-process stand-in for the remote balance API."""

    def __init__(self):
        self.balances = {}
        self.api_keys = []
        self.fail_set_for = set()
        self.reject_set_for = set()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/get-balance/{account_id}", self.get_balance)
        app.router.add_post("/set-balance", self.set_balance)
        app.router.add_get("/broken/get-balance/{account_id}", self.broken_balance)
        app.router.add_get("/html/get-balance/{account_id}", self.html_balance)
        return app

    async def get_balance(self, request: web.Request) -> web.Response:
        account_id = request.match_info["account_id"]
        if account_id not in self.balances:
            return web.json_response({"error": "USER_NOT_FOUND"}, status=404)
        return web.json_response({"balance": self.balances[account_id]})

    async def broken_balance(self, request: web.Request) -> web.Response:
        return web.json_response({"balance": "lots"})

    async def html_balance(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>oops</html>", content_type="text/html")

    async def set_balance(self, request: web.Request) -> web.Response:
        self.api_keys.append(request.headers.get("X-API-KEY"))
        payload = await request.json()
        account_id = payload["userId"]
        if account_id in self.fail_set_for:
            return web.Response(status=503, text="maintenance")
        if account_id in self.reject_set_for:
            return web.Response(status=400, text="INVALID_BALANCE")
        self.balances[account_id] = payload["balance"]
        return web.json_response({"ok": True})


class HttpBalanceRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.api = FakeBalanceApi()
        self.server = test_utils.TestServer(self.api.build_app())
        await self.server.start_server()
        self.repo = HttpBalanceRepository(str(self.server.make_url("/")), api_key="secret")

    async def asyncTearDown(self) -> None:
        await self.repo.close()
        await self.server.close()

    async def test_is_not_transactional(self):
        self.assertNotIsInstance(self.repo, TransactionalBalanceRepository)

    async def test_unprovisioned_account_reads_as_zero(self):
        self.assertEqual(await self.repo.get_balance("123"), 0)

    async def test_get_balance(self):
        self.api.balances["123"] = 42

        self.assertEqual(await self.repo.get_balance("123"), 42)

    async def test_set_balance_sends_api_key(self):
        await self.repo.set_balance("123", 7)

        self.assertEqual(self.api.balances["123"], 7)
        self.assertEqual(self.api.api_keys, ["secret"])

    async def test_malformed_balance_is_store_unavailable(self):
        repo = HttpBalanceRepository(str(self.server.make_url("/broken")))
        try:
            with self.assertRaises(StoreUnavailable):
                await repo.get_balance("123")
        finally:
            await repo.close()

    async def test_non_json_balance_is_store_unavailable(self):
        repo = HttpBalanceRepository(str(self.server.make_url("/html")))
        try:
            with self.assertRaises(StoreUnavailable):
                await repo.get_balance("123")

            result = await transfer_between_accounts("1", "2", 10, repo)
        finally:
            await repo.close()

        self.assertTrue(result.failed)
        self.assertEqual(result.reason, ErrorCode.STORE_UNAVAILABLE)
        self.assertEqual(result.stage, TransferStage.VALIDATING)

    async def test_fractional_balance_is_not_truncated(self):
        self.api.balances["1"] = 10.7

        with self.assertRaises(StoreUnavailable):
            await self.repo.get_balance("1")

        result = await transfer_between_accounts("1", "2", 10, self.repo)

        self.assertEqual(result.reason, ErrorCode.STORE_UNAVAILABLE)
        self.assertEqual(self.api.balances, {"1": 10.7})

    async def test_whole_float_balance_is_accepted(self):
        self.api.balances["1"] = 12.0

        self.assertEqual(await self.repo.get_balance("1"), 12)

    async def test_negative_balance_is_store_unavailable(self):
        self.api.balances["1"] = -5

        with self.assertRaises(StoreUnavailable):
            await self.repo.get_balance("1")

    async def test_server_error_is_store_unavailable(self):
        self.api.fail_set_for.add("123")

        with self.assertRaises(StoreUnavailable):
            await self.repo.set_balance("123", 1)

    async def test_rejected_write_is_constraint_violation(self):
        self.api.reject_set_for.add("123")

        with self.assertRaises(ConstraintViolation):
            await self.repo.set_balance("123", 1)

    async def test_unreachable_api_is_store_unavailable(self):
        repo = HttpBalanceRepository("http://127.0.0.1:9", request_timeout=2)
        try:
            with self.assertRaises(StoreUnavailable):
                await repo.get_balance("123")
        finally:
            await repo.close()

    async def test_transfer_over_http(self):
        self.api.balances["1"] = 500

        result = await transfer_between_accounts("1", "2", 200, self.repo)

        self.assertTrue(result.success)
        self.assertEqual(self.api.balances, {"1": 300, "2": 200})

    async def test_transfer_compensates_when_credit_fails(self):
        self.api.balances["1"] = 500
        self.api.fail_set_for.add("2")

        result = await transfer_between_accounts("1", "2", 200, self.repo)

        self.assertEqual(result.reason, ErrorCode.PARTIAL_FAILURE)
        self.assertEqual(result.stage, TransferStage.CREDITING)
        self.assertTrue(result.compensated)
        self.assertEqual(self.api.balances, {"1": 500})


if __name__ == "__main__":
    unittest.main()
