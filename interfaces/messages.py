from __future__ import annotations

from application.services import (
    BalanceQueryResult,
    ErrorCode,
    OperationResult,
    TransferResult,
)

REGISTER_HINT = "Use {prefix}register <your_account_id> to link your account first."
ACCOUNT_ID_EXAMPLE = "Example: 5818937005"


def render_transfer_result(result: TransferResult, prefix: str = "!") -> str:
    """Plain-text reply for a transfer attempt, shared by every chat channel."""

    if result.success:
        return (
            "Payment successful!\n"
            f"Amount: {result.amount}\n"
            f"To: {result.recipient}\n"
            f"From: {result.sender}\n"
            f"Your new balance: {result.sender_new_balance}"
        )

    if result.reason is ErrorCode.NOT_REGISTERED:
        return "You are not registered. " + REGISTER_HINT.format(prefix=prefix)

    if result.reason is ErrorCode.INSUFFICIENT_FUNDS:
        return (
            "Insufficient funds.\n"
            f"Balance: {result.available}\n"
            f"Requested: {result.amount}\n"
            f"Short by: {result.shortfall}"
        )

    if result.reason is ErrorCode.INVALID_ACCOUNT:
        return f"Invalid recipient account ID. It should contain only numbers.\n{ACCOUNT_ID_EXAMPLE}"

    if result.reason is ErrorCode.PARTIAL_FAILURE:
        outcome = "was reversed" if result.compensated else "could NOT be reversed"
        return (
            "Payment failed part-way through and the debit "
            f"{outcome}.\n"
            f"Amount: {result.amount}\n"
            f"To: {result.recipient}\n"
            f"From: {result.sender}\n"
            f"Stage reached: {result.stage.value}\n"
            "Please contact an administrator to reconcile this payment."
        )

    if result.reason is ErrorCode.CONSTRAINT_VIOLATION:
        return (
            "Payment refused by the balance system.\n"
            f"Reason: {result.error_message}\n"
            "Please contact an administrator."
        )

    if result.failed:
        return (
            "Payment failed: the balance system is unavailable.\n"
            f"Stage reached: {result.stage.value}\n"
            f"Reason: {result.error_message}\n"
            f"Check your balance with {prefix}bal before trying again."
        )

    return result.error_message or "Payment rejected."


def render_balance_result(result: BalanceQueryResult, prefix: str = "!") -> str:
    if result.success:
        if result.balance == 0:
            return (
                f"Account ID: {result.account_id}\n"
                "Balance: 0\n"
                "If you expected funds here, contact an admin to add you to the balance system."
            )
        return f"Account ID: {result.account_id}\nBalance: {result.balance}"

    if result.reason is ErrorCode.NOT_REGISTERED:
        return "You are not registered. " + REGISTER_HINT.format(prefix=prefix)

    return f"Could not fetch your balance: {result.error_message}. Please try again later."


def render_register_result(result: OperationResult, prefix: str = "!") -> str:
    if result.success:
        return (
            f"Registration successful! Linked to account ID {result.account_id}.\n"
            f"You can now use {prefix}bal to check your balance. "
            "Re-register anytime to change your linked ID."
        )

    if result.reason is ErrorCode.INVALID_ACCOUNT:
        return f"Invalid account ID. It should contain only numbers.\n{ACCOUNT_ID_EXAMPLE}"

    return f"Registration failed: {result.error_message}"


def render_unregister_result(result: OperationResult, prefix: str = "!") -> str:
    if result.success:
        return (
            f"Unlinked from account ID {result.account_id}. "
            f"Use {prefix}register to link an account again."
        )

    if result.reason is ErrorCode.NOT_REGISTERED:
        return "You are not registered, so there is nothing to unlink."

    return f"Unregister failed: {result.error_message}"


def render_credit_result(result: OperationResult) -> str:
    if result.success:
        return f"Credited account {result.account_id}. New balance: {result.balance}"
    return f"Credit failed: {result.error_message}"


def render_help(prefix: str = "!") -> str:
    p = prefix
    return (
        f"{p}register <account_id>        - link or change your account ID\n"
        f"{p}unregister                   - unlink your account ID\n"
        f"{p}bal                          - show your balance\n"
        f"{p}pay <account_id> <amount>    - pay another account\n"
    )
