from __future__ import annotations

from typing import Callable, Dict, Optional, Protocol, Sequence, runtime_checkable

from .models import IdentityLink

BalanceUpdate = Callable[[Dict[str, int]], Dict[str, int]]


class IdentityLinkRepository(Protocol):
    """
    Maps external identities (Discord/Telegram) to account IDs.

    The application layer only ever reads links through `resolve_account`;
    no process-wide mapping is kept anywhere else.
    """

    async def resolve_account(self, provider: str, caller_id: str) -> Optional[str]:
        """Return the account linked to the given caller, or None."""

        ...

    async def set_link(self, link: IdentityLink) -> None:
        """Create or overwrite the link for `link.provider` / `link.caller_id`."""

        ...

    async def clear_link(self, provider: str, caller_id: str) -> None:
        ...

    async def count_links(self) -> int:
        ...


@runtime_checkable
class BalanceRepository(Protocol):
    """
    Abstraction over balance persistence.

    Implementations are responsible for:
    - Reporting unknown accounts as a balance of 0.
    - Refusing negative balances with `ConstraintViolation`.
    - Translating driver/transport failures into `StoreUnavailable`.
    """

    async def get_balance(self, account_id: str) -> int:
        ...

    async def set_balance(self, account_id: str, amount: int) -> None:
        ...


@runtime_checkable
class TransactionalBalanceRepository(BalanceRepository, Protocol):
    async def run_transaction(
        self,
        account_ids: Sequence[str],
        update: BalanceUpdate,
    ) -> Dict[str, int]:
        """
        Atomically read the balances of `account_ids`, pass them to `update`
        and persist the mapping it returns.

        Either every returned balance is written or none is. Any exception
        raised by `update` aborts the transaction and propagates unchanged.
        Returns the balances that were written.
        """

        ...
