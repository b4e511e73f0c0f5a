"""
JSON API for the stock trading sandbox.
- Uses port 5001 by default
- CORS enabled
- JSON shape:
  - success: { success: true, message, ...data_fields }
  - error:   { success: false, error, field?, ...optional_fields }

A background MarketTicker steps the market and samples the portfolio value
once per TICK_INTERVAL while it is running.
"""
from pathlib import Path

from flask import Flask, jsonify, request
from flask_cors import CORS

import config
from services.errors import MalformedSnapshot, StorageUnavailable, TradingError
from services.prices import MarketTicker, make_default_market
from services.snapshot import load_snapshot, save_snapshot
from trading import Portfolio, Side, execute_trade


# -----------------------
# Helper functions
# -----------------------
def resp_ok(message="ok", data=None, status=200):
    """
    Success response:

    {
      "success": true,
      "message": "text",
      ...data fields merged here...
    }
    """
    payload = {"success": True, "message": message}
    if isinstance(data, dict):
        payload.update(data)
    return jsonify(payload), status


def resp_err(message="error", status=400, data=None):
    """
    Error response:

    {
      "success": false,
      "error": "message",
      ...optional extra fields...
    }
    """
    payload = {"success": False, "error": message}
    if isinstance(data, dict):
        payload.update(data)
    return jsonify(payload), status


def read_json_request(require_json=False):
    try:
        j = request.get_json(silent=True)
    except Exception:
        j = None
    if require_json and j is None:
        return None, resp_err("Request body must be valid JSON", 400)
    return j or {}, None


class Simulator:
    """The engine pieces one app instance works with."""

    def __init__(self, start_cash=config.START_CASH, seed=None, interval=config.TICK_INTERVAL):
        self.interval = interval
        self._build(start_cash, seed)

    def _build(self, start_cash, seed):
        self.market = make_default_market(seed=seed)
        self.portfolio = Portfolio(start_cash)
        self.ticker = MarketTicker(self.market, self.portfolio, interval=self.interval)

    def reset(self, start_cash=config.START_CASH, seed=None):
        was_running = self.ticker.running
        self.ticker.stop()
        self._build(start_cash, seed)
        if was_running:
            self.ticker.start()


def _portfolio_summary_dict(sim):
    """
    { cash, market_value, total_value, holdings: [ {ticker, qty, avg_price, market_price, market_value}, ... ] }
    """
    cash, holdings = sim.portfolio.get_state()
    rows = []
    market_value = 0.0
    for h in holdings:
        stock = sim.market.get_stock(h.ticker)
        price = stock.price if stock is not None else 0.0
        value = h.qty * price
        market_value += value
        row = h.as_dict()
        row.update({"market_price": price, "market_value": value, "listed": stock is not None})
        rows.append(row)
    return {
        "cash": cash,
        "market_value": market_value,
        "total_value": cash + market_value,
        "holdings": rows,
    }


def create_app(start_cash=config.START_CASH, seed=None, interval=config.TICK_INTERVAL,
               data_dir=config.DATA_DIR, log_file=config.LOG_FILE, autostart=False):
    app = Flask(__name__)
    CORS(app)

    logger = config.setup_logging("stock_app", log_file)
    data_dir = Path(data_dir)
    sim = Simulator(start_cash=start_cash, seed=seed, interval=interval)
    app.extensions["simulator"] = sim

    def snapshot_path(j):
        # only bare file names, always inside data_dir
        name = Path(str(j.get("file") or config.SNAPSHOT_FILE.name)).name
        return data_dir / name

    @app.before_request
    def log_request():
        try:
            body = request.get_data(as_text=True)
        except Exception:
            body = ""
        logger.info(f"REQ {request.remote_addr} {request.method} {request.path} body={body}")

    @app.errorhandler(TradingError)
    def handle_trading_error(e):
        return resp_err(str(e), 400, {"field": e.field})

    @app.errorhandler(MalformedSnapshot)
    def handle_malformed(e):
        return resp_err(str(e), 422, {"line": e.line_no})

    @app.errorhandler(StorageUnavailable)
    def handle_storage(e):
        return resp_err(str(e), 503)

    # -----------------------
    # API endpoints
    # -----------------------
    @app.route("/", methods=["GET"])
    def root():
        return resp_ok(
            "Stock Trading Sandbox API running. Visit /api/prices",
            {"routes": ["/api/prices", "/api/portfolio", "/api/transactions", "/api/value_history"]},
        )

    @app.route("/api/prices", methods=["GET"])
    def api_prices():
        stocks = [s.as_dict() for s in sim.market.get_all_stocks()]
        return resp_ok("prices returned", {"tick": sim.market.ticks, "stocks": stocks})

    @app.route("/api/step", methods=["POST"])
    def api_step():
        j, err = read_json_request(require_json=False)
        if err:
            return err
        steps = j.get("steps", request.args.get("steps", 1))
        try:
            steps = int(steps)
        except (TypeError, ValueError):
            return resp_err("steps must be an integer", 400, {"field": "steps"})
        if steps < 1:
            return resp_err("steps must be >= 1", 400, {"field": "steps"})
        if steps > 3650:
            return resp_err("steps too large (max 3650)", 400, {"field": "steps"})

        for _ in range(steps):
            sim.ticker.tick()
        logger.info(f"STEP steps={steps} tick={sim.market.ticks}")
        return resp_ok(
            f"Advanced {steps} tick(s)",
            {"tick": sim.market.ticks, "prices": sim.market.list_prices()},
        )

    def _trade(side):
        j, err = read_json_request(require_json=True)
        if err:
            return err
        txn = execute_trade(sim.portfolio, sim.market, side, j.get("symbol"), j.get("qty"))
        response = {"transaction": txn.as_dict(), "portfolio_summary": _portfolio_summary_dict(sim)}
        return resp_ok("bought" if side is Side.BUY else "sold", response)

    @app.route("/api/buy", methods=["POST"])
    def api_buy():
        """Expects JSON: { "symbol": "RELI", "qty": 10 }"""
        return _trade(Side.BUY)

    @app.route("/api/sell", methods=["POST"])
    def api_sell():
        """Expects JSON: { "symbol": "RELI", "qty": 4 }"""
        return _trade(Side.SELL)

    @app.route("/api/portfolio", methods=["GET"])
    def api_portfolio():
        return resp_ok("portfolio", _portfolio_summary_dict(sim))

    @app.route("/api/transactions", methods=["GET"])
    def api_transactions():
        """
        Newest first unless ?order=chronological.
        Returns: { message, order, transactions: [...] }
        """
        order = request.args.get("order", "newest_first").lower()
        if order not in ("newest_first", "chronological"):
            return resp_err("order must be 'newest_first' or 'chronological'", 400, {"field": "order"})
        txns = sim.portfolio.get_transactions(newest_first=(order == "newest_first"))
        return resp_ok("transactions", {"order": order, "transactions": [t.as_dict() for t in txns]})

    @app.route("/api/value_history", methods=["GET"])
    def api_value_history():
        history = sim.portfolio.get_history()
        return resp_ok("value history", {"history": history, "limit": config.HISTORY_LIMIT})

    @app.route("/api/save", methods=["POST"])
    def api_save():
        j, err = read_json_request(require_json=False)
        if err:
            return err
        path = save_snapshot(sim.portfolio, snapshot_path(j))
        return resp_ok("saved", {"file": path.name})

    @app.route("/api/load", methods=["POST"])
    def api_load():
        j, err = read_json_request(require_json=False)
        if err:
            return err
        path = snapshot_path(j)
        load_snapshot(sim.portfolio, path)
        return resp_ok("loaded", {"file": path.name, "portfolio_summary": _portfolio_summary_dict(sim)})

    @app.route("/api/ticker/start", methods=["POST"])
    def api_ticker_start():
        sim.ticker.start()
        return resp_ok("ticker started", {"running": sim.ticker.running, "interval": sim.ticker.interval})

    @app.route("/api/ticker/stop", methods=["POST"])
    def api_ticker_stop():
        sim.ticker.stop()
        return resp_ok("ticker stopped", {"running": sim.ticker.running})

    @app.route("/api/reset", methods=["POST"])
    def api_reset():
        sim.reset(start_cash=start_cash, seed=seed)
        logger.info("RESET performed")
        return resp_ok("reset complete", _portfolio_summary_dict(sim))

    # -----------------------
    # Generic error handlers
    # -----------------------
    @app.errorhandler(404)
    def handle_404(e):
        return resp_err("Not found", 404)

    @app.errorhandler(405)
    def handle_405(e):
        return resp_err("Method not allowed", 405)

    @app.errorhandler(500)
    def handle_500(e):
        logger.exception("Unhandled server error")
        return resp_err("Server error", 500)

    if autostart:
        sim.ticker.start()
    return app


# -----------------------
# Run server
# -----------------------
if __name__ == "__main__":
    print(f"Starting app on http://{config.HOST}:{config.PORT}")
    app = create_app(autostart=True)
    app.run(host=config.HOST, port=config.PORT, debug=False)
