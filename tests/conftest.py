import pytest

from app import create_app
from services.prices import Market, Stock
from trading import Portfolio


class StubRng:
    """Returns queued percentage draws from uniform(); repeats the last one."""

    def __init__(self, *draws):
        self.draws = list(draws) or [0.0]
        self.calls = []

    def uniform(self, a, b):
        self.calls.append((a, b))
        if len(self.draws) > 1:
            return self.draws.pop(0)
        return self.draws[0]


@pytest.fixture
def stub_rng():
    return StubRng(0.0)


@pytest.fixture
def market(stub_rng):
    m = Market(rng=stub_rng)
    m.add_stock(Stock("RELI", "Reliance Industries", 2500.0))
    m.add_stock(Stock("TCS", "Tata Consultancy", 3600.0))
    m.add_stock(Stock("INFY", "Infosys", 1450.0))
    return m


@pytest.fixture
def portfolio():
    return Portfolio(100000.0)


@pytest.fixture
def app(tmp_path):
    app = create_app(seed=7, interval=0.01, data_dir=tmp_path / "data", log_file=tmp_path / "server.log")
    app.config["TESTING"] = True
    yield app
    app.extensions["simulator"].ticker.stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_rng():
    return StubRng
