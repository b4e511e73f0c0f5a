import time


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.get_json()["success"] is True


def test_prices_in_catalog_order(client):
    data = client.get("/api/prices").get_json()
    assert [s["ticker"] for s in data["stocks"]] == ["RELI", "TCS", "INFY", "HDFC", "ICIC", "HIND"]
    reli = data["stocks"][0]
    assert reli == {"ticker": "RELI", "name": "Reliance Industries", "price": 2500.0, "change_percent": 0.0}


def test_step_moves_prices_and_records_value(client):
    r = client.post("/api/step", json={"steps": 3})
    data = r.get_json()
    assert r.status_code == 200
    assert data["tick"] == 3
    history = client.get("/api/value_history").get_json()["history"]
    assert len(history) == 4
    assert history == [100000.0] * 4


def test_step_rejects_bad_count(client):
    r = client.post("/api/step", json={"steps": "many"})
    assert r.status_code == 400
    assert r.get_json()["field"] == "steps"
    assert client.post("/api/step", json={"steps": 0}).status_code == 400


def test_buy_then_sell(client):
    r = client.post("/api/buy", json={"symbol": "reli", "qty": 10})
    data = r.get_json()
    assert r.status_code == 200
    assert data["transaction"]["type"] == "BUY"
    assert data["portfolio_summary"]["cash"] == 75000.0
    holding = data["portfolio_summary"]["holdings"][0]
    assert (holding["ticker"], holding["qty"], holding["avg_price"]) == ("RELI", 10, 2500.0)
    assert holding["market_value"] == 25000.0

    r = client.post("/api/sell", json={"symbol": "RELI", "qty": "4"})
    assert r.status_code == 200
    assert r.get_json()["portfolio_summary"]["holdings"][0]["qty"] == 6


def test_trade_validation_errors(client):
    cases = [
        ({"symbol": "RELI", "qty": 0}, "qty"),
        ({"symbol": "RELI"}, "qty"),
        ({"symbol": "RELI", "qty": "ten"}, "qty"),
        ({"symbol": "NOPE", "qty": 1}, "symbol"),
        ({"symbol": "TCS", "qty": 1000}, "cash"),
    ]
    for body, field in cases:
        r = client.post("/api/buy", json=body)
        assert r.status_code == 400, body
        data = r.get_json()
        assert data["success"] is False
        assert data["field"] == field

    r = client.post("/api/sell", json={"symbol": "RELI", "qty": 1})
    assert r.status_code == 400
    assert "Not enough holdings" in r.get_json()["error"]

    summary = client.get("/api/portfolio").get_json()
    assert summary["cash"] == 100000.0
    assert summary["holdings"] == []
    assert client.get("/api/transactions").get_json()["transactions"] == []


def test_trade_requires_json(client):
    r = client.post("/api/buy", data="symbol=RELI", content_type="text/plain")
    assert r.status_code == 400


def test_transactions_order(client):
    client.post("/api/buy", json={"symbol": "RELI", "qty": 1})
    client.post("/api/buy", json={"symbol": "TCS", "qty": 1})
    data = client.get("/api/transactions").get_json()
    assert data["order"] == "newest_first"
    assert [t["ticker"] for t in data["transactions"]] == ["TCS", "RELI"]
    data = client.get("/api/transactions?order=chronological").get_json()
    assert [t["ticker"] for t in data["transactions"]] == ["RELI", "TCS"]
    assert client.get("/api/transactions?order=sideways").status_code == 400


def test_save_and_load(client, tmp_path):
    client.post("/api/buy", json={"symbol": "INFY", "qty": 2})
    r = client.post("/api/save", json={"file": "mine.csv"})
    assert r.status_code == 200
    saved = tmp_path / "data" / "mine.csv"
    assert saved.read_text(encoding="utf-8").splitlines() == ["cash,97100.0", "INFY,2,1450.0"]

    client.post("/api/buy", json={"symbol": "RELI", "qty": 1})
    r = client.post("/api/load", json={"file": "mine.csv"})
    assert r.status_code == 200
    summary = r.get_json()["portfolio_summary"]
    assert summary["cash"] == 97100.0
    assert [h["ticker"] for h in summary["holdings"]] == ["INFY"]
    assert client.get("/api/transactions").get_json()["transactions"] == []
    assert client.get("/api/value_history").get_json()["history"] == []


def test_save_stays_inside_data_dir(client, tmp_path):
    client.post("/api/save", json={"file": "../../escape.csv"})
    assert (tmp_path / "data" / "escape.csv").exists()
    assert not (tmp_path.parent / "escape.csv").exists()


def test_load_errors_are_distinct(client, tmp_path):
    r = client.post("/api/load", json={"file": "missing.csv"})
    assert r.status_code == 503

    (tmp_path / "data").mkdir(exist_ok=True)
    (tmp_path / "data" / "bad.csv").write_text("cash,1\nRELI,x,1\n", encoding="utf-8")
    r = client.post("/api/load", json={"file": "bad.csv"})
    assert r.status_code == 422
    assert r.get_json()["line"] == 2


def test_ticker_start_stop(client, app):
    sim = app.extensions["simulator"]
    assert client.post("/api/ticker/start").get_json()["running"] is True
    deadline = time.time() + 5
    while sim.market.ticks < 2 and time.time() < deadline:
        time.sleep(0.01)
    assert client.post("/api/ticker/stop").get_json()["running"] is False
    assert sim.market.ticks >= 2


def test_reset(client):
    client.post("/api/buy", json={"symbol": "RELI", "qty": 1})
    client.post("/api/step")
    data = client.post("/api/reset").get_json()
    assert data["cash"] == 100000.0
    assert data["holdings"] == []
    prices = client.get("/api/prices").get_json()
    assert prices["tick"] == 0


def test_unknown_route(client):
    r = client.get("/api/nothing")
    assert r.status_code == 404
    assert r.get_json() == {"success": False, "error": "Not found"}


def test_huge_quantity_is_rejected_not_crashed(client):
    r = client.post("/api/buy", json={"symbol": "RELI", "qty": "1" + "0" * 400})
    assert r.status_code == 400
    assert r.get_json()["field"] == "cash"
    assert client.get("/api/portfolio").get_json()["cash"] == 100000.0
