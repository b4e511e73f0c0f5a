# services/snapshot.py
"""
Flat text snapshot of a portfolio:

    cash,<decimal>
    <TICKER>,<qty>,<avg price>
    ...

Blank lines are ignored. Loading is a full restore: the file is parsed and
validated completely before the portfolio is touched.
"""
import logging
import math
from pathlib import Path
from typing import List, Tuple, Union

from services.errors import MalformedSnapshot, StorageUnavailable
from trading import Holding, Portfolio

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def dump_snapshot(portfolio: Portfolio) -> str:
    cash, holdings = portfolio.get_state()
    lines = [f"cash,{cash}"]
    for h in holdings:
        lines.append(f"{h.ticker.upper()},{h.qty},{h.avg_price}")
    return "\n".join(lines) + "\n"


def _parse_number(text: str, what: str, line_no: int) -> float:
    try:
        value = float(text)
    except ValueError:
        raise MalformedSnapshot(f"{what} is not a number: {text!r}", line_no)
    if not math.isfinite(value) or value < 0:
        raise MalformedSnapshot(f"{what} must be a non-negative number: {text!r}", line_no)
    return value


def parse_snapshot(text: str) -> Tuple[float, List[Holding]]:
    """
    Parse snapshot text into (cash, holdings).
    Raises MalformedSnapshot naming the line and the problem.
    """
    cash = None
    holdings: List[Holding] = []
    seen = set()

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        parts = [p.strip() for p in line.split(",")]

        if parts[0].lower() == "cash":
            if cash is not None:
                raise MalformedSnapshot("duplicate cash line", line_no)
            if len(parts) != 2:
                raise MalformedSnapshot("expected 'cash,<amount>'", line_no)
            cash = _parse_number(parts[1], "cash", line_no)
            continue

        if cash is None:
            raise MalformedSnapshot("first line must be 'cash,<amount>'", line_no)
        if len(parts) != 3:
            raise MalformedSnapshot("expected 'ticker,qty,avg_price'", line_no)

        ticker = parts[0].upper()
        if not ticker:
            raise MalformedSnapshot("empty ticker", line_no)
        if ticker in seen:
            raise MalformedSnapshot(f"duplicate ticker {ticker}", line_no)
        try:
            qty = int(parts[1])
        except ValueError:
            raise MalformedSnapshot(f"quantity is not an integer: {parts[1]!r}", line_no)
        if qty <= 0:
            raise MalformedSnapshot(f"quantity must be > 0: {qty}", line_no)
        avg_price = _parse_number(parts[2], "average price", line_no)

        seen.add(ticker)
        holdings.append(Holding(ticker, qty, avg_price))

    if cash is None:
        raise MalformedSnapshot("missing cash line")
    return cash, holdings


def save_snapshot(portfolio: Portfolio, path: PathLike) -> Path:
    """Write the portfolio snapshot to path, creating parent directories."""
    path = Path(path)
    text = dump_snapshot(portfolio)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        logger.error("save to %s failed: %s", path, e)
        raise StorageUnavailable(path, str(e)) from e
    logger.info("SAVE portfolio -> %s", path)
    return path


def load_snapshot(portfolio: Portfolio, path: PathLike) -> Portfolio:
    """
    Replace portfolio state with the snapshot at path.
    On any error the portfolio keeps its previous state.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8-sig") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.error("load from %s failed: %s", path, e)
        raise StorageUnavailable(path, str(e)) from e

    cash, holdings = parse_snapshot(text)
    portfolio.replace_state(cash, holdings)
    logger.info("LOAD portfolio <- %s (cash=%.2f, holdings=%d)", path, cash, len(holdings))
    return portfolio
