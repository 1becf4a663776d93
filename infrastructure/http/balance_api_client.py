from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from domain.errors import ConstraintViolation, StoreUnavailable
from domain.repositories import BalanceRepository

logger = logging.getLogger(__name__)

# Statuses the API uses to refuse a write it considers invalid.
_REJECTED_STATUSES = {400, 409, 422}


class HttpBalanceRepository(BalanceRepository):
    """Balance store backed by the remote balance API.

    The API offers one read and one write endpoint:

        GET  {base}/get-balance/{account_id}  -> {"balance": <number>}
        POST {base}/set-balance               <- {"userId": ..., "balance": ...}

    A 404 on read means the account has never been provisioned and is
    reported as a balance of 0. There is no multi-key update, so transfers
    over this store take the sequential path with compensation.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def get_balance(self, account_id: str) -> int:
        url = f"{self.base_url}/get-balance/{account_id}"
        try:
            async with self._get_session().get(url, headers=self._headers()) as resp:
                text = await resp.text()
                if resp.status == 404:
                    logger.debug("get_balance:not_provisioned account=%s", account_id)
                    return 0
                if resp.status != 200:
                    logger.error("Balance API error on get-balance: HTTP %s %s", resp.status, text)
                    raise StoreUnavailable(f"Balance API error: {resp.status}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError as exc:
                    raise StoreUnavailable(f"Invalid balance response: {text}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise StoreUnavailable(f"Balance API unreachable: {exc}") from exc

        return self._parse_balance(data, text)

    @staticmethod
    def _parse_balance(data: Any, text: str) -> int:
        balance = data.get("balance") if isinstance(data, dict) else None
        if isinstance(balance, bool) or not isinstance(balance, (int, float)):
            raise StoreUnavailable(f"Invalid balance response: {text}")
        if isinstance(balance, float) and not balance.is_integer():
            raise StoreUnavailable(f"Fractional balance in response: {text}")
        if balance < 0:
            raise StoreUnavailable(f"Negative balance in response: {text}")
        return int(balance)

    async def set_balance(self, account_id: str, amount: int) -> None:
        if amount < 0:
            raise ConstraintViolation(f"refusing negative balance {amount} for {account_id}")

        url = f"{self.base_url}/set-balance"
        payload = {"userId": account_id, "balance": amount}
        try:
            async with self._get_session().post(url, json=payload, headers=self._headers()) as resp:
                if resp.status in (200, 201, 204):
                    return
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise StoreUnavailable(f"Balance API unreachable: {exc}") from exc

        logger.error("Balance API error on set-balance: HTTP %s %s", resp.status, text)
        if resp.status in _REJECTED_STATUSES:
            raise ConstraintViolation(f"Balance API rejected write: {resp.status} - {text}")
        raise StoreUnavailable(f"Balance API error: {resp.status} - {text}")
