# services/prices.py
import logging
import random
import threading
from typing import Callable, Dict, Iterable, List, Optional

from config import PRICE_FLOOR, PRICE_STEP_PCT, TICK_INTERVAL
from services.errors import UnknownTicker

logger = logging.getLogger(__name__)


def round2(value: float) -> float:
    return round(float(value), 2)


class Stock:
    """
    A tradable instrument. Ticker and name never change; the price moves
    on every market tick and the previous price is kept for percent change.
    """

    def __init__(self, ticker: str, name: str, price: float):
        price = round2(price)
        if price <= 0:
            raise ValueError(f"Initial price for {ticker} must be positive")
        self._ticker: str = ticker.upper()
        self._name: str = name
        self.price: float = price
        self.prev_price: float = price

    @property
    def ticker(self) -> str:
        return self._ticker

    @property
    def name(self) -> str:
        return self._name

    def set_price(self, price: float) -> None:
        self.prev_price = self.price
        self.price = round2(price)

    @property
    def change_percent(self) -> float:
        if self.prev_price == 0:
            return 0.0
        return (self.price - self.prev_price) / self.prev_price

    def as_dict(self) -> Dict[str, object]:
        return {
            "ticker": self.ticker,
            "name": self.name,
            "price": self.price,
            "change_percent": self.change_percent,
        }

    def __repr__(self) -> str:
        return f"Stock({self.ticker!r}, {self.name!r}, {self.price:.2f})"


class Market:
    """
    Fixed catalog of stocks (insertion ordered) plus the random generator
    that drives the price walk.
    """

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.stocks: Dict[str, Stock] = {}
        self.rng = rng if rng is not None else random.Random(seed)
        self.ticks: int = 0
        self._lock = threading.Lock()

    def add_stock(self, stock: Stock) -> None:
        """Seed the catalog. Tickers must be unique."""
        with self._lock:
            if stock.ticker in self.stocks:
                raise ValueError(f"Duplicate ticker: {stock.ticker}")
            self.stocks[stock.ticker] = stock

    def get_stock(self, ticker: str) -> Optional[Stock]:
        """Exact-match lookup; None when the ticker is not listed."""
        return self.stocks.get(ticker)

    def require_stock(self, ticker: str) -> Stock:
        stock = self.get_stock(ticker)
        if stock is None:
            raise UnknownTicker(ticker)
        return stock

    def get_all_stocks(self) -> List[Stock]:
        with self._lock:
            return list(self.stocks.values())

    def list_prices(self) -> Dict[str, float]:
        """Return { ticker: price } in catalog order."""
        with self._lock:
            return {ticker: stock.price for ticker, stock in self.stocks.items()}

    def step(self) -> None:
        """
        Move every price by a uniform random percentage in
        [-PRICE_STEP_PCT, +PRICE_STEP_PCT]. A move that would land at or
        below PRICE_FLOOR is dropped and the stock is left as it was.
        """
        with self._lock:
            for stock in self.stocks.values():
                pct = self.rng.uniform(-PRICE_STEP_PCT, PRICE_STEP_PCT)
                new_price = round2(stock.price * (1 + pct / 100.0))
                if new_price <= PRICE_FLOOR:
                    logger.debug("price floor hit for %s, keeping %.2f", stock.ticker, stock.price)
                    continue
                stock.set_price(new_price)
            self.ticks += 1


DEFAULT_STOCKS = [
    ("RELI", "Reliance Industries", 2500.0),
    ("TCS", "Tata Consultancy", 3600.0),
    ("INFY", "Infosys", 1450.0),
    ("HDFC", "HDFC Bank", 1500.0),
    ("ICIC", "ICICI Bank", 920.0),
    ("HIND", "Hindustan Unilever", 2500.0),
]


def make_default_market(seed: Optional[int] = None, rng: Optional[random.Random] = None) -> Market:
    """
    Create a Market with the default set of stocks.
    """
    market = Market(rng=rng, seed=seed)
    for ticker, name, price in DEFAULT_STOCKS:
        market.add_stock(Stock(ticker, name, price))
    return market


class MarketTicker:
    """
    Background driver: every `interval` seconds step the market, sample the
    portfolio value, then call any on_tick callbacks.

    stop() prevents further ticks; a tick already running is allowed to finish.
    """

    def __init__(
        self,
        market: Market,
        portfolio,
        interval: float = TICK_INTERVAL,
        on_tick: Optional[Iterable[Callable[[], None]]] = None,
    ):
        self.market = market
        self.portfolio = portfolio
        self.interval = float(interval)
        self.on_tick: List[Callable[[], None]] = list(on_tick or [])
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> None:
        """Run one tick synchronously."""
        self.market.step()
        self.portfolio.record_history(self.market)
        for callback in self.on_tick:
            try:
                callback()
            except Exception:
                logger.exception("on_tick callback failed")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="market-ticker", daemon=True)
        self._thread.start()
        logger.info("market ticker started (interval=%.2fs)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout if timeout is not None else self.interval + 1.0)
        self._thread = None
        logger.info("market ticker stopped after %d ticks", self.market.ticks)

    def _run(self) -> None:
        # first tick fires immediately, then once per interval
        while not self._stop.is_set():
            self.tick()
            if self._stop.wait(self.interval):
                break
