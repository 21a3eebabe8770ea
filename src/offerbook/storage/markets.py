"""Market id derivation and the markets lookup table."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

MARKET_ID_LENGTH = 10


def make_market_id(exchange_name: str, base: str, quote: str) -> str:
    """Deterministic market id for (exchange, base, quote). Asset strings must be issuer independent."""
    id_string = f"{exchange_name}_{base}_{quote}"
    return hashlib.sha256(id_string.encode("utf-8")).hexdigest()[:MARKET_ID_LENGTH]


def upsert_market(conn: DuckDBPyConnection, exchange_name: str, base: str, quote: str) -> str:
    """Register a market and return its id."""
    market_id = make_market_id(exchange_name, base, quote)
    conn.execute(
        """
        INSERT INTO markets (market_id, exchange_name, base, quote)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (market_id) DO UPDATE SET
            exchange_name = excluded.exchange_name,
            base = excluded.base,
            quote = excluded.quote
        """,
        [market_id, exchange_name, base, quote],
    )
    return market_id


def list_markets(conn: DuckDBPyConnection) -> list[dict]:
    """List registered markets as list of dicts."""
    rows = conn.execute(
        "SELECT market_id, exchange_name, base, quote FROM markets ORDER BY exchange_name, base, quote"
    ).fetchall()
    columns = ["market_id", "exchange_name", "base", "quote"]
    return [dict(zip(columns, r)) for r in rows]
