# services/errors.py
"""
Error types raised by the trading engine.

Two families:
- TradingError: the trade or input was invalid, nothing was changed.
- SnapshotError: a snapshot could not be read, written or understood.
"""
from typing import Optional


class TradingError(Exception):
    """Base class for rejected trades. `field` names the offending input."""

    field: Optional[str] = None

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        if field is not None:
            self.field = field


class InvalidQuantity(TradingError):
    field = "qty"


class InvalidPrice(TradingError):
    field = "price"


class UnknownTicker(TradingError):
    field = "symbol"

    def __init__(self, ticker: str):
        super().__init__(f"Unknown ticker: {ticker}")
        self.ticker = ticker


class InsufficientFunds(TradingError):
    field = "cash"

    def __init__(self, required: float, available: float):
        super().__init__(f"Not enough cash: required {required:.2f}, available {available:.2f}")
        self.required = required
        self.available = available


class InsufficientHoldings(TradingError):
    field = "qty"

    def __init__(self, ticker: str, requested: int, held: int):
        super().__init__(f"Not enough holdings of {ticker}: requested {requested}, held {held}")
        self.ticker = ticker
        self.requested = requested
        self.held = held


class SnapshotError(Exception):
    """Base class for persistence failures."""


class MalformedSnapshot(SnapshotError):
    def __init__(self, reason: str, line_no: Optional[int] = None):
        where = f"line {line_no}: " if line_no is not None else ""
        super().__init__(f"Malformed snapshot ({where}{reason})")
        self.reason = reason
        self.line_no = line_no


class StorageUnavailable(SnapshotError):
    def __init__(self, path, reason: str):
        super().__init__(f"Storage unavailable for {path}: {reason}")
        self.path = path
        self.reason = reason
