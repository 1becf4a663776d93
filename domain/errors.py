class StoreError(Exception):
    """Base class for failures reported by a store adapter."""


class StoreUnavailable(StoreError):
    """The backing store could not be reached or did not answer in time."""


class ConstraintViolation(StoreError):
    """The store refused a write, e.g. one that would make a balance negative."""


class InvalidAmountError(ValueError):
    pass


class InsufficientFundsError(Exception):
    """
    Raised from inside a transactional update when the sender cannot cover
    the amount. Aborts the transaction without writing anything.
    """

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(f"balance {available} is below requested {requested}")
        self.available = available
        self.requested = requested
