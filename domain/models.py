from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from .errors import InvalidAmountError

_ACCOUNT_ID_RE = re.compile(r"[0-9]+")
_AMOUNT_RE = re.compile(r"\+?[0-9]+")

# Largest value a BIGINT balance column can hold.
MAX_AMOUNT = 2**63 - 1


@dataclass(frozen=True)
class IdentityLink:
    """
    Binding between a chat identity and a balance-holding account.

    The caller is identified by `(provider, caller_id)` so the same link
    store can serve Discord and Telegram. At most one link exists per
    caller; registering again overwrites it.
    """

    provider: str
    caller_id: str
    account_id: str


@dataclass(frozen=True)
class TransferRequest:
    """A single value transfer. Never persisted."""

    sender: str
    recipient: str
    amount: int


def is_valid_account_id(value: object) -> bool:
    """Account IDs are strings of ASCII digits (Roblox user IDs)."""

    return isinstance(value, str) and bool(_ACCOUNT_ID_RE.fullmatch(value))


def parse_amount(value: Union[int, float, str]) -> int:
    """
    Coerce a user supplied amount into an integer number of units.

    Positivity is not checked here; only the shape of the value.
    """

    if isinstance(value, bool):
        raise InvalidAmountError(f"Amount must be a whole number, got {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidAmountError("Amount must be a whole number.")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not _AMOUNT_RE.fullmatch(text):
            raise InvalidAmountError(f"Amount must be a whole number, got {value!r}.")
        return int(text)
    raise InvalidAmountError(f"Amount must be a whole number, got {value!r}.")
