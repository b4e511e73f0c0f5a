# trading.py
import datetime
import enum
import logging
import math
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from config import HISTORY_LIMIT, START_CASH
from services.errors import (
    InsufficientFunds,
    InsufficientHoldings,
    InvalidPrice,
    InvalidQuantity,
    TradingError,
)

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class Side(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Holding:
    """Position in one ticker: quantity held and weighted-average unit cost."""

    ticker: str
    qty: int
    avg_price: float

    def as_dict(self) -> Dict[str, Any]:
        return {"ticker": self.ticker, "qty": self.qty, "avg_price": self.avg_price}


@dataclass(frozen=True)
class Transaction:
    """One executed trade."""

    side: Side
    ticker: str
    qty: int
    price: float
    timestamp: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def value(self) -> float:
        return self.price * self.qty

    def as_dict(self) -> Dict[str, Any]:
        return {
            "time": self.timestamp.strftime(TIME_FORMAT),
            "type": self.side.value,
            "ticker": self.ticker,
            "qty": self.qty,
            "price": self.price,
            "value": self.value,
        }


def merge_buy(old_qty: int, old_avg: float, new_qty: int, new_price: float) -> Tuple[int, float]:
    """
    Combine an existing position with a new purchase.
    Returns (qty, avg) where avg is the weighted average cost.
    """
    qty = old_qty + new_qty
    avg = (old_avg * old_qty + new_price * new_qty) / qty
    return qty, avg


def parse_quantity(raw: Any) -> int:
    """
    Turn user input (int or numeric string) into a positive integer quantity.
    Raises InvalidQuantity if it is missing, non-numeric, fractional or <= 0.
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidQuantity("Quantity is required")

    if isinstance(raw, int):
        qty = raw
    elif isinstance(raw, float):
        if not math.isfinite(raw) or not raw.is_integer():
            raise InvalidQuantity("Quantity must be a whole number")
        qty = int(raw)
    else:
        text = str(raw).strip()
        if not text:
            raise InvalidQuantity("Quantity is required")
        try:
            qty = int(text)
        except ValueError:
            raise InvalidQuantity(f"Quantity must be an integer, got {text!r}")

    if qty <= 0:
        raise InvalidQuantity("Quantity must be > 0")
    return qty


def _check_qty(qty: Any) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise InvalidQuantity("Quantity must be an integer")
    if qty <= 0:
        raise InvalidQuantity("Quantity must be > 0")
    return qty


def _check_ticker(ticker: Any) -> str:
    if ticker is None or not str(ticker).strip():
        raise TradingError("Ticker is required", field="symbol")
    return str(ticker).strip().upper()


def _check_holding(holding: Holding) -> Holding:
    """Normalize the ticker and enforce qty > 0, avg_price >= 0."""
    ticker = _check_ticker(holding.ticker)
    if holding.qty <= 0:
        raise ValueError(f"Holding quantity for {ticker} must be > 0")
    if not math.isfinite(holding.avg_price) or holding.avg_price < 0:
        raise ValueError(f"Average price for {ticker} must be a non-negative number")
    return replace(holding, ticker=ticker)


def _check_price(price: Any) -> float:
    try:
        price = float(price)
    except (TypeError, ValueError):
        raise InvalidPrice("Price must be a number")
    if not math.isfinite(price) or price <= 0:
        raise InvalidPrice("Price must be > 0")
    return price


class Portfolio:
    """
    Cash, holdings, transaction log and a bounded series of total-value
    samples for a single user.

    - holdings: dict ticker -> Holding (insertion ordered, qty always > 0)
    - transactions: chronological list of Transaction
    - history: the most recent HISTORY_LIMIT values of cash + market value

    All mutations and multi-field reads hold one re-entrant lock, so a
    check-then-act sequence like "enough cash? then debit" cannot interleave
    with another trade or a history sample.
    """

    def __init__(self, cash: float = START_CASH, history_limit: int = HISTORY_LIMIT):
        self._lock = threading.RLock()
        self._cash: float = float(cash)
        self._holdings: Dict[str, Holding] = {}
        self._transactions: List[Transaction] = []
        self._history: Deque[float] = deque(maxlen=history_limit)
        self.record_history(None)

    # --- trading ops ---
    def buy(self, ticker: str, qty: int, price: float) -> Transaction:
        """
        Buy qty units of ticker at the caller-supplied price.
        Raises InvalidQuantity / InvalidPrice / InsufficientFunds; nothing
        changes on failure.
        """
        ticker = _check_ticker(ticker)
        qty = _check_qty(qty)
        price = _check_price(price)
        try:
            cost = qty * price
        except OverflowError:
            cost = math.inf

        with self._lock:
            if cost > self._cash:
                raise InsufficientFunds(cost, self._cash)

            current = self._holdings.get(ticker)
            if current is None:
                self._holdings[ticker] = Holding(ticker, qty, price)
            else:
                new_qty, new_avg = merge_buy(current.qty, current.avg_price, qty, price)
                self._holdings[ticker] = Holding(ticker, new_qty, new_avg)

            self._cash -= cost
            txn = Transaction(Side.BUY, ticker, qty, price)
            self._transactions.append(txn)
            cash_after = self._cash

        logger.info("BUY %s qty=%d price=%.2f cash_after=%.2f", ticker, qty, price, cash_after)
        return txn

    def sell(self, ticker: str, qty: int, price: float) -> Transaction:
        """
        Sell qty units of ticker at price. Average cost is left alone; the
        holding disappears once its quantity reaches zero.
        """
        ticker = _check_ticker(ticker)
        qty = _check_qty(qty)
        price = _check_price(price)

        with self._lock:
            current = self._holdings.get(ticker)
            held = current.qty if current is not None else 0
            if held < qty:
                raise InsufficientHoldings(ticker, qty, held)

            remaining = held - qty
            if remaining == 0:
                del self._holdings[ticker]
            else:
                self._holdings[ticker] = Holding(ticker, remaining, current.avg_price)

            self._cash += qty * price
            txn = Transaction(Side.SELL, ticker, qty, price)
            self._transactions.append(txn)
            cash_after = self._cash

        logger.info("SELL %s qty=%d price=%.2f cash_after=%.2f", ticker, qty, price, cash_after)
        return txn

    def can_sell(self, ticker: str, qty: int) -> bool:
        ticker = _check_ticker(ticker)
        with self._lock:
            current = self._holdings.get(ticker)
            return current is not None and current.qty >= qty

    # --- valuation ---
    def get_market_value(self, market) -> float:
        """
        Mark holdings to the market's current prices.
        Tickers missing from the market count as zero instead of raising.
        """
        with self._lock:
            value = 0.0
            for holding in self._holdings.values():
                stock = market.get_stock(holding.ticker)
                price = stock.price if stock is not None else 0.0
                value += holding.qty * price
            return value

    def get_total_value(self, market=None) -> float:
        with self._lock:
            market_value = 0.0 if market is None else self.get_market_value(market)
            return self._cash + market_value

    def record_history(self, market=None) -> float:
        """Append cash + market value to the value series and return it."""
        with self._lock:
            total = self.get_total_value(market)
            self._history.append(total)
            return total

    # --- accessors (all return copies) ---
    def get_cash(self) -> float:
        with self._lock:
            return self._cash

    def get_holding(self, ticker: str) -> Optional[Holding]:
        with self._lock:
            return self._holdings.get(str(ticker or "").strip().upper())

    def get_holdings(self) -> List[Holding]:
        with self._lock:
            return list(self._holdings.values())

    def get_state(self) -> Tuple[float, List[Holding]]:
        """Cash and holdings read together, for snapshots."""
        with self._lock:
            return self._cash, list(self._holdings.values())

    def get_history(self) -> List[float]:
        with self._lock:
            return list(self._history)

    def get_transactions(self, newest_first: bool = False) -> List[Transaction]:
        """Chronological by default; newest_first=True gives display order."""
        with self._lock:
            txns = list(self._transactions)
        if newest_first:
            txns.reverse()
        return txns

    # --- restore only ---
    def set_cash(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value) or value < 0:
            raise ValueError("Cash must be a non-negative number")
        with self._lock:
            self._cash = value

    def set_holding(self, holding: Holding) -> None:
        holding = _check_holding(holding)
        with self._lock:
            self._holdings[holding.ticker] = holding

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def clear_transactions(self) -> None:
        with self._lock:
            self._transactions.clear()

    def replace_state(self, cash: float, holdings: Iterable[Holding]) -> None:
        """
        Full restore from already-validated data: cash and holdings are
        swapped in, transactions and history start empty.
        """
        cash = float(cash)
        if not math.isfinite(cash) or cash < 0:
            raise ValueError("Cash must be a non-negative number")
        holdings = [_check_holding(h) for h in holdings]

        with self._lock:
            self._cash = cash
            self._holdings = {h.ticker: h for h in holdings}
            self.clear_transactions()
            self.clear_history()

    # --- helpers ---
    def summary(self, market) -> str:
        """Return a human-readable summary for CLI usage."""
        with self._lock:
            cash = self._cash
            holdings = list(self._holdings.values())
            market_value = self.get_market_value(market)

        lines = [f"Cash: {cash:,.2f}", f"Market value: {market_value:,.2f}",
                 f"Total: {cash + market_value:,.2f}", "Holdings:"]
        if not holdings:
            lines.append("  (none)")
        for h in holdings:
            stock = market.get_stock(h.ticker)
            if stock is None:
                lines.append(f"  {h.ticker}: {h.qty} @ avg {h.avg_price:.2f} -> UNKNOWN (not in market)")
                continue
            lines.append(
                f"  {h.ticker}: {h.qty} @ avg {h.avg_price:.2f}  "
                f"mkt {stock.price:.2f} -> {h.qty * stock.price:,.2f}"
            )
        return "\n".join(lines)


def execute_trade(portfolio: Portfolio, market, side: Any, ticker: Any, qty: Any) -> Transaction:
    """
    User-initiated market order: validate the inputs, take the current
    market price and hand off to Portfolio.buy / Portfolio.sell.
    """
    if not isinstance(side, Side):
        side = Side(str(side).strip().upper())
    ticker = str(ticker or "").strip().upper()

    try:
        qty = parse_quantity(qty)
        price = market.require_stock(ticker).price
        if side is Side.BUY:
            return portfolio.buy(ticker, qty, price)
        return portfolio.sell(ticker, qty, price)
    except TradingError as e:
        logger.info("REJECTED %s %s qty=%r: %s", side.value, ticker, qty, e)
        raise
