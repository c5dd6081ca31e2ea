"""
Typed ledger errors.

The API layer converts these into HTTP responses; trading actions convert
them into {"error": message} results.
"""


class LedgerError(Exception):
    """Base class for every error raised by the ledger."""


class NotAuthenticated(LedgerError):
    def __init__(self, message: str = "User not authenticated."):
        super().__init__(message)


class InvalidTradeError(LedgerError):
    pass


class InsufficientFundsError(LedgerError):
    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds: Required: ${required:.2f}, Available: ${available:.2f}."
        )


class InsufficientHoldingsError(LedgerError):
    def __init__(self, coin_id: str, requested: float, held: float):
        self.coin_id = coin_id
        self.requested = requested
        self.held = held
        super().__init__(
            f"Insufficient holdings of {coin_id}: Requested: {requested:.8f}, Held: {held:.8f}."
        )


class OrphanSellError(LedgerError):
    def __init__(self, coin_id: str):
        self.coin_id = coin_id
        super().__init__(f"SELL recorded for {coin_id} with no open position.")


class InvalidDisplayNameError(LedgerError):
    pass


class StorageError(LedgerError):
    pass


class PartialWriteError(StorageError):
    """Raised when the outcome of a balance + trade write cannot be confirmed."""


class UniqueConstraintViolation(LedgerError):
    def __init__(self, message: str = "Display name already taken."):
        super().__init__(message)
