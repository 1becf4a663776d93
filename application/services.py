from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Dict, Optional, TypeVar, Union

from domain.errors import (
    ConstraintViolation,
    InsufficientFundsError,
    InvalidAmountError,
    StoreError,
    StoreUnavailable,
)
from domain.models import (
    MAX_AMOUNT,
    IdentityLink,
    TransferRequest,
    is_valid_account_id,
    parse_amount,
)
from domain.repositories import (
    BalanceRepository,
    IdentityLinkRepository,
    TransactionalBalanceRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEOUT = 10.0

T = TypeVar("T")
AmountInput = Union[int, float, str]


@dataclass
class ExternalContext:
    """
    Information about the caller from a particular channel (Discord, Telegram).

    The application layer never depends on concrete SDK types; it only sees
    this small context object.
    """

    provider: str
    provider_user_id: str
    display_name: str = ""


class TransferStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


class TransferStage(str, Enum):
    VALIDATING = "validating"
    DEBITING = "debiting"
    CREDITING = "crediting"
    COMPENSATING = "compensating"
    COMMITTED = "committed"


class ErrorCode(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    INVALID_ACCOUNT = "invalid_account"
    SELF_TRANSFER = "self_transfer"
    NOT_REGISTERED = "not_registered"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    STORE_UNAVAILABLE = "store_unavailable"
    PARTIAL_FAILURE = "partial_failure"
    CONSTRAINT_VIOLATION = "constraint_violation"


@dataclass
class TransferResult:
    """
    Outcome of a single transfer attempt.

    Exactly one of three shapes:
    - success: both new balances are set.
    - rejected: nothing was written; `reason` says why.
    - failed: infrastructure trouble; `stage` is how far the attempt got and
      `compensated` tells whether a partial debit was rolled back.
    """

    status: TransferStatus
    sender: Optional[str] = None
    recipient: Optional[str] = None
    amount: Optional[int] = None
    reason: Optional[ErrorCode] = None
    stage: TransferStage = TransferStage.VALIDATING
    sender_new_balance: Optional[int] = None
    recipient_new_balance: Optional[int] = None
    available: Optional[int] = None
    shortfall: Optional[int] = None
    compensated: bool = False
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is TransferStatus.SUCCESS

    @property
    def rejected(self) -> bool:
        return self.status is TransferStatus.REJECTED

    @property
    def failed(self) -> bool:
        return self.status is TransferStatus.FAILED


@dataclass
class BalanceQueryResult:
    success: bool
    account_id: Optional[str] = None
    balance: Optional[int] = None
    reason: Optional[ErrorCode] = None
    error_message: Optional[str] = None


@dataclass
class OperationResult:
    """Generic result type for simple operations."""

    success: bool
    error_message: Optional[str] = None
    reason: Optional[ErrorCode] = None
    account_id: Optional[str] = None
    balance: Optional[int] = None


async def _bounded(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a store call, turning a timeout into `StoreUnavailable`."""

    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise StoreUnavailable(f"store call timed out after {timeout}s") from exc


def _parse_positive_amount(amount: AmountInput) -> int:
    units = parse_amount(amount)
    if units <= 0:
        raise InvalidAmountError("Amount must be greater than zero.")
    if units > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount must not exceed {MAX_AMOUNT}.")
    return units


def _store_error_code(exc: StoreError) -> ErrorCode:
    if isinstance(exc, ConstraintViolation):
        return ErrorCode.CONSTRAINT_VIOLATION
    return ErrorCode.STORE_UNAVAILABLE


def _rejected(
    reason: ErrorCode,
    message: str,
    sender: Optional[str] = None,
    recipient: Optional[str] = None,
    amount: Optional[int] = None,
) -> TransferResult:
    return TransferResult(
        status=TransferStatus.REJECTED,
        sender=sender,
        recipient=recipient,
        amount=amount,
        reason=reason,
        error_message=message,
    )


def _insufficient(request: TransferRequest, available: int) -> TransferResult:
    shortfall = request.amount - available
    result = _rejected(
        ErrorCode.INSUFFICIENT_FUNDS,
        f"Insufficient funds: balance is {available}, {shortfall} short of {request.amount}.",
        request.sender,
        request.recipient,
        request.amount,
    )
    result.available = available
    result.shortfall = shortfall
    return result


def _store_failure(
    request: TransferRequest,
    stage: TransferStage,
    exc: StoreError,
) -> TransferResult:
    return TransferResult(
        status=TransferStatus.FAILED,
        sender=request.sender,
        recipient=request.recipient,
        amount=request.amount,
        reason=_store_error_code(exc),
        stage=stage,
        error_message=f"{exc}. Check your balance before retrying.",
    )


def _committed(
    request: TransferRequest,
    sender_new_balance: int,
    recipient_new_balance: int,
) -> TransferResult:
    logger.info(
        "transfer:ok sender=%s recipient=%s amount=%s sender_new=%s recipient_new=%s",
        request.sender,
        request.recipient,
        request.amount,
        sender_new_balance,
        recipient_new_balance,
    )
    return TransferResult(
        status=TransferStatus.SUCCESS,
        sender=request.sender,
        recipient=request.recipient,
        amount=request.amount,
        stage=TransferStage.COMMITTED,
        sender_new_balance=sender_new_balance,
        recipient_new_balance=recipient_new_balance,
    )


async def get_account_balance(
    account_id: str,
    balance_repo: BalanceRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> int:
    """Current balance of an account. Accounts without a record read as 0."""

    return await _bounded(balance_repo.get_balance(account_id), timeout)


async def get_balance_for(
    external_ctx: ExternalContext,
    link_repo: IdentityLinkRepository,
    balance_repo: BalanceRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> BalanceQueryResult:
    try:
        account_id = await _bounded(
            link_repo.resolve_account(external_ctx.provider, external_ctx.provider_user_id),
            timeout,
        )
        if account_id is None:
            return BalanceQueryResult(
                success=False,
                reason=ErrorCode.NOT_REGISTERED,
                error_message="You are not registered.",
            )
        balance = await get_account_balance(account_id, balance_repo, timeout=timeout)
    except StoreError as exc:
        logger.warning(
            "balance:store_error caller=%s:%s error=%s",
            external_ctx.provider,
            external_ctx.provider_user_id,
            exc,
        )
        return BalanceQueryResult(
            success=False,
            reason=_store_error_code(exc),
            error_message=str(exc),
        )

    return BalanceQueryResult(success=True, account_id=account_id, balance=balance)


async def register_account(
    external_ctx: ExternalContext,
    account_id: str,
    link_repo: IdentityLinkRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> OperationResult:
    """
    Link the caller to `account_id`, replacing any previous link.
    """

    account_id = (account_id or "").strip()
    if not is_valid_account_id(account_id):
        return OperationResult(
            success=False,
            reason=ErrorCode.INVALID_ACCOUNT,
            error_message="Account ID should contain only numbers.",
        )

    try:
        await _bounded(
            link_repo.set_link(
                IdentityLink(
                    provider=external_ctx.provider,
                    caller_id=external_ctx.provider_user_id,
                    account_id=account_id,
                )
            ),
            timeout,
        )
    except StoreError as exc:
        return OperationResult(
            success=False,
            reason=_store_error_code(exc),
            error_message=str(exc),
        )

    logger.info(
        "register:ok caller=%s:%s account=%s",
        external_ctx.provider,
        external_ctx.provider_user_id,
        account_id,
    )
    return OperationResult(success=True, account_id=account_id)


async def unregister_account(
    external_ctx: ExternalContext,
    link_repo: IdentityLinkRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> OperationResult:
    """Remove the caller's link. Balances are left untouched."""

    try:
        account_id = await _bounded(
            link_repo.resolve_account(external_ctx.provider, external_ctx.provider_user_id),
            timeout,
        )
        if account_id is None:
            return OperationResult(
                success=False,
                reason=ErrorCode.NOT_REGISTERED,
                error_message="You are not registered.",
            )
        await _bounded(
            link_repo.clear_link(external_ctx.provider, external_ctx.provider_user_id),
            timeout,
        )
    except StoreError as exc:
        return OperationResult(
            success=False,
            reason=_store_error_code(exc),
            error_message=str(exc),
        )

    logger.info(
        "unregister:ok caller=%s:%s account=%s",
        external_ctx.provider,
        external_ctx.provider_user_id,
        account_id,
    )
    return OperationResult(success=True, account_id=account_id)


async def credit_account(
    account_id: str,
    amount: AmountInput,
    balance_repo: BalanceRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> OperationResult:
    """
    Administrative credit: the only operation that creates value.
    """

    account_id = (account_id or "").strip()
    if not is_valid_account_id(account_id):
        return OperationResult(
            success=False,
            reason=ErrorCode.INVALID_ACCOUNT,
            error_message="Account ID should contain only numbers.",
        )
    try:
        units = _parse_positive_amount(amount)
    except InvalidAmountError as exc:
        return OperationResult(success=False, reason=ErrorCode.INVALID_AMOUNT, error_message=str(exc))

    try:
        if isinstance(balance_repo, TransactionalBalanceRepository):
            written = await _bounded(
                balance_repo.run_transaction(
                    [account_id],
                    lambda current: {account_id: current.get(account_id, 0) + units},
                ),
                timeout,
            )
            new_balance = written[account_id]
        else:
            current = await _bounded(balance_repo.get_balance(account_id), timeout)
            new_balance = current + units
            await _bounded(balance_repo.set_balance(account_id, new_balance), timeout)
    except StoreError as exc:
        return OperationResult(
            success=False,
            reason=_store_error_code(exc),
            account_id=account_id,
            error_message=str(exc),
        )

    logger.info("credit:ok account=%s amount=%s new_balance=%s", account_id, units, new_balance)
    return OperationResult(success=True, account_id=account_id, balance=new_balance)


async def transfer(
    external_ctx: ExternalContext,
    recipient_account_id: str,
    amount: AmountInput,
    link_repo: IdentityLinkRepository,
    balance_repo: BalanceRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> TransferResult:
    """
    Move `amount` from the caller's linked account to `recipient_account_id`.

    The amount and the recipient ID are checked before any I/O; the caller is
    then resolved through the link store and the rest is delegated to
    `transfer_between_accounts`.
    """

    try:
        units = _parse_positive_amount(amount)
    except InvalidAmountError as exc:
        return _rejected(ErrorCode.INVALID_AMOUNT, str(exc), recipient=recipient_account_id)

    recipient_account_id = (recipient_account_id or "").strip()
    if not is_valid_account_id(recipient_account_id):
        return _rejected(
            ErrorCode.INVALID_ACCOUNT,
            "Recipient account ID should contain only numbers.",
            recipient=recipient_account_id,
            amount=units,
        )

    try:
        sender = await _bounded(
            link_repo.resolve_account(external_ctx.provider, external_ctx.provider_user_id),
            timeout,
        )
    except StoreError as exc:
        return TransferResult(
            status=TransferStatus.FAILED,
            recipient=recipient_account_id,
            amount=units,
            reason=_store_error_code(exc),
            error_message=str(exc),
        )

    if sender is None:
        return _rejected(
            ErrorCode.NOT_REGISTERED,
            "You are not registered.",
            recipient=recipient_account_id,
            amount=units,
        )

    return await transfer_between_accounts(
        sender,
        recipient_account_id,
        units,
        balance_repo,
        timeout=timeout,
    )


async def transfer_between_accounts(
    sender: str,
    recipient: str,
    amount: AmountInput,
    balance_repo: BalanceRepository,
    *,
    timeout: float = DEFAULT_STORE_TIMEOUT,
) -> TransferResult:
    """
    Handle a transfer between two known accounts:
    - Validate the amount, reject self-transfers.
    - Read the sender balance and reject if it cannot cover the amount.
    - Apply debit and credit, atomically when the store supports it.
    """

    try:
        units = _parse_positive_amount(amount)
    except InvalidAmountError as exc:
        return _rejected(ErrorCode.INVALID_AMOUNT, str(exc), sender, recipient)

    if sender == recipient:
        return _rejected(
            ErrorCode.SELF_TRANSFER,
            "You cannot send money to your own account.",
            sender,
            recipient,
            units,
        )

    request = TransferRequest(sender=sender, recipient=recipient, amount=units)

    try:
        available = await _bounded(balance_repo.get_balance(sender), timeout)
    except StoreError as exc:
        return _store_failure(request, TransferStage.VALIDATING, exc)

    if available < units:
        logger.info("transfer:insufficient sender=%s have=%s need=%s", sender, available, units)
        return _insufficient(request, available)

    if isinstance(balance_repo, TransactionalBalanceRepository):
        return await _transfer_atomically(request, balance_repo, timeout)
    return await _transfer_sequentially(request, available, balance_repo, timeout)


async def _transfer_atomically(
    request: TransferRequest,
    balance_repo: TransactionalBalanceRepository,
    timeout: float,
) -> TransferResult:
    def apply(current: Dict[str, int]) -> Dict[str, int]:
        # Re-checked under the store's lock; the earlier read may be stale.
        sender_balance = current.get(request.sender, 0)
        if sender_balance < request.amount:
            raise InsufficientFundsError(sender_balance, request.amount)
        return {
            request.sender: sender_balance - request.amount,
            request.recipient: current.get(request.recipient, 0) + request.amount,
        }

    try:
        written = await _bounded(
            balance_repo.run_transaction([request.sender, request.recipient], apply),
            timeout,
        )
    except InsufficientFundsError as exc:
        logger.info(
            "transfer:insufficient_in_txn sender=%s have=%s need=%s",
            request.sender,
            exc.available,
            request.amount,
        )
        return _insufficient(request, exc.available)
    except StoreError as exc:
        logger.warning(
            "transfer:txn_failed sender=%s recipient=%s amount=%s error=%s",
            request.sender,
            request.recipient,
            request.amount,
            exc,
        )
        return _store_failure(request, TransferStage.DEBITING, exc)

    return _committed(request, written[request.sender], written[request.recipient])


async def _transfer_sequentially(
    request: TransferRequest,
    available: int,
    balance_repo: BalanceRepository,
    timeout: float,
) -> TransferResult:
    """
    Two independent writes. Not safe against concurrent transfers touching
    the same account: a lost update is possible between read and write.
    """

    try:
        recipient_balance = await _bounded(balance_repo.get_balance(request.recipient), timeout)
    except StoreError as exc:
        return _store_failure(request, TransferStage.VALIDATING, exc)

    sender_new = available - request.amount
    recipient_new = recipient_balance + request.amount

    try:
        await _bounded(balance_repo.set_balance(request.sender, sender_new), timeout)
    except StoreError as exc:
        logger.warning(
            "transfer:debit_failed sender=%s recipient=%s amount=%s error=%s",
            request.sender,
            request.recipient,
            request.amount,
            exc,
        )
        return _store_failure(request, TransferStage.DEBITING, exc)

    try:
        await _bounded(balance_repo.set_balance(request.recipient, recipient_new), timeout)
    except StoreError as exc:
        logger.error(
            "transfer:credit_failed sender=%s recipient=%s amount=%s error=%s",
            request.sender,
            request.recipient,
            request.amount,
            exc,
        )
        compensated = await _compensate(request, available, balance_repo, timeout)
        if compensated:
            detail = "The debit was reversed."
        else:
            detail = "The debit could NOT be reversed."
        return TransferResult(
            status=TransferStatus.FAILED,
            sender=request.sender,
            recipient=request.recipient,
            amount=request.amount,
            reason=ErrorCode.PARTIAL_FAILURE,
            stage=TransferStage.CREDITING,
            compensated=compensated,
            error_message=f"Crediting the recipient failed ({exc}). {detail}",
        )

    return _committed(request, sender_new, recipient_new)


async def _compensate(
    request: TransferRequest,
    original_balance: int,
    balance_repo: BalanceRepository,
    timeout: float,
) -> bool:
    """Best effort: put the sender's pre-transfer balance back."""

    try:
        await _bounded(balance_repo.set_balance(request.sender, original_balance), timeout)
    except StoreError:
        logger.exception(
            "transfer:compensation_failed sender=%s recipient=%s amount=%s restore_to=%s "
            "stage=%s; manual reconciliation required",
            request.sender,
            request.recipient,
            request.amount,
            original_balance,
            TransferStage.COMPENSATING.value,
        )
        return False

    logger.warning(
        "transfer:compensated sender=%s restored_to=%s amount=%s",
        request.sender,
        original_balance,
        request.amount,
    )
    return True
