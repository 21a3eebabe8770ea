"""Shared fixtures: temp DuckDB, a native/USD pair, a paper-backed ledger venue."""

import tempfile
from pathlib import Path

import pytest

from offerbook.exchanges.ledger import LedgerVenue, PaperBroadcaster
from offerbook.models import Asset, OrderConstraints, TradingPair
from offerbook.storage.db import get_connection, init_schema
from offerbook.trading.liabilities import LiabilityTracker

NATIVE = Asset.native()
USD = Asset(code="USD", issuer="GISSUER")


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def native():
    return NATIVE


@pytest.fixture
def usd():
    return USD


@pytest.fixture
def pair():
    return TradingPair(base=NATIVE, quote=USD)


@pytest.fixture
def constraints():
    return OrderConstraints.make(price_precision=7, volume_precision=7, min_base_volume=1.0)


@pytest.fixture
def broadcaster():
    return PaperBroadcaster({NATIVE: 10000.0, USD: 10000.0})


@pytest.fixture
def liabilities(broadcaster):
    tracker = LiabilityTracker()
    tracker.reset(broadcaster.load_balances())
    return tracker


@pytest.fixture
def venue(broadcaster, liabilities):
    return LedgerVenue(broadcaster, liabilities)
