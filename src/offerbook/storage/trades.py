"""Trade log and daily traded-volume queries."""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import duckdb
import structlog

from offerbook.errors import ConfigError, VolumeQueryError
from offerbook.models import OrderAction, Trade

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class DailyVolume:
    """Volume traded on one UTC date (base units and quote units)."""

    base_vol: float = 0.0
    quote_vol: float = 0.0


def date_string(ts_ms: int | None = None) -> str:
    """UTC date for a ms epoch timestamp (now when None)."""
    ts = ts_ms / 1000.0 if ts_ms is not None else time.time()
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(DATE_FORMAT)


def record_trades(conn: DuckDBPyConnection, market_id: str, trades: Iterable[Trade]) -> int:
    """Append fills for a market; duplicates (same txid) are ignored. Returns rows inserted."""
    rows = []
    for t in trades:
        if not t.transaction_id:
            log.warning("trade_without_txid_skipped", market_id=market_id, trade=str(t))
            continue
        rows.append(
            [
                market_id,
                t.transaction_id,
                date_string(t.timestamp),
                t.timestamp,
                t.action.value,
                t.type.value,
                t.price.as_float(),
                t.volume.as_float(),
                t.quote_volume.as_float(),
                t.fee.as_float() if t.fee is not None else None,
            ]
        )
    if not rows:
        return 0
    before = conn.execute("SELECT COUNT(*) FROM trades").fetchone()[0]
    conn.executemany(
        """
        INSERT INTO trades (market_id, txid, trade_date, exchange_ts, action, type, counter_price, base_volume, counter_cost, fee)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (market_id, txid) DO NOTHING
        """,
        rows,
    )
    after = conn.execute("SELECT COUNT(*) FROM trades").fetchone()[0]
    return after - before


def daily_volume(
    conn: DuckDBPyConnection,
    market_ids: Sequence[str],
    action: OrderAction | str,
    date: str,
) -> DailyVolume:
    """Sum base and quote volume for ``action`` trades on ``date`` across ``market_ids``."""
    if not market_ids:
        return DailyVolume()
    action_value = action.value if isinstance(action, OrderAction) else str(action)
    placeholders = ", ".join("?" for _ in market_ids)
    row = conn.execute(
        f"""
        SELECT COALESCE(SUM(base_volume), 0), COALESCE(SUM(counter_cost), 0)
        FROM trades
        WHERE market_id IN ({placeholders}) AND action = ? AND trade_date = ?
        """,
        [*market_ids, action_value, date],
    ).fetchone()
    return DailyVolume(base_vol=float(row[0]), quote_vol=float(row[1]))


class DailyVolumeByDate:
    """Daily-volume query bound to a set of market ids and one side."""

    def __init__(self, conn: DuckDBPyConnection, market_ids: Sequence[str], action: OrderAction | str) -> None:
        if not market_ids:
            raise ConfigError("need at least one market id for a daily volume query")
        self.conn = conn
        self.market_ids = list(market_ids)
        self.action = OrderAction(action)

    def query(self, date: str) -> DailyVolume:
        try:
            return daily_volume(self.conn, self.market_ids, self.action, date)
        except duckdb.Error as e:
            raise VolumeQueryError(
                f"could not load daily volume for {date}: {e}",
                {"market_ids": self.market_ids, "action": self.action.value},
            ) from e
