"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Fills on any market we trade (append-only, deduplicated by txid)
CREATE TABLE IF NOT EXISTS trades (
    market_id       VARCHAR NOT NULL,
    txid            VARCHAR NOT NULL,
    trade_date      VARCHAR NOT NULL,
    exchange_ts     BIGINT,
    action          VARCHAR NOT NULL,
    type            VARCHAR NOT NULL,
    counter_price   DOUBLE NOT NULL,
    base_volume     DOUBLE NOT NULL,
    counter_cost    DOUBLE NOT NULL,
    fee             DOUBLE,
    PRIMARY KEY (market_id, txid)
);

-- Market id -> human readable market (exchange, base, quote)
CREATE TABLE IF NOT EXISTS markets (
    market_id       VARCHAR PRIMARY KEY,
    exchange_name   VARCHAR NOT NULL,
    base            VARCHAR NOT NULL,
    quote           VARCHAR NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True when another process may be writing (e.g. offerbook trade run)
    so reporting commands can read while the trader holds the write lock."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
