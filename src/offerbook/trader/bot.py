"""Trader - the tick loop that drives one strategy against the ledger venue."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog

from offerbook.errors import ConfigError, OfferbookError, SubmissionError
from offerbook.exchanges.ledger import Broadcaster, LedgerVenue, PaperBroadcaster
from offerbook.filters.volume import VolumeFilter
from offerbook.models import Asset, TradingPair
from offerbook.storage.markets import upsert_market
from offerbook.storage.trades import record_trades
from offerbook.strategies.base import FillHandler, Strategy, StrategyContext, SubmitFilter
from offerbook.strategies.registry import FactoryDeps, Registry
from offerbook.trading.liabilities import LiabilityTracker

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from offerbook.config.settings import Settings

log = structlog.get_logger(__name__)


class FillTracker:
    """Polls our fills from the venue, records them and hands them to the fill handlers in order."""

    def __init__(
        self,
        venue: LedgerVenue,
        handlers: Sequence[FillHandler],
        conn: DuckDBPyConnection | None = None,
        market_id: str | None = None,
    ) -> None:
        self.venue = venue
        self.handlers = list(handlers)
        self.conn = conn
        self.market_id = market_id
        self.cursor: Any = None

    def poll(self) -> int:
        result = self.venue.get_trades(self.cursor)
        self.cursor = result.cursor
        if not result.trades:
            return 0
        if self.conn is not None and self.market_id is not None:
            inserted = record_trades(self.conn, self.market_id, result.trades)
            log.info("fills_recorded", market_id=self.market_id, fills=len(result.trades), inserted=inserted)
        for trade in result.trades:
            for handler in self.handlers:
                try:
                    handler.handle_fill(trade)
                except SubmissionError as e:
                    log.error("fill_handler_failed", trade_id=trade.transaction_id, error=str(e))
        return len(result.trades)


class Trader:
    """One pass per tick: balances, liabilities reset, live offers, strategy, submit."""

    def __init__(
        self,
        venue: LedgerVenue,
        liabilities: LiabilityTracker,
        strategy: Strategy,
        pair: TradingPair,
        fill_tracker: FillTracker | None = None,
        tick_interval_sec: float = 5.0,
    ) -> None:
        self.venue = venue
        self.liabilities = liabilities
        self.strategy = strategy
        self.pair = pair
        self.fill_tracker = fill_tracker
        self.tick_interval_sec = tick_interval_sec
        self.tick_count = 0

    def tick(self) -> int:
        """Run one update. Returns the number of operations submitted."""
        base, quote = self.pair.base, self.pair.quote
        balances, trust_limits = self.venue.load_balances()
        self.liabilities.reset(balances, trust_limits)
        selling, buying = self.venue.load_offers(base, quote)

        self.strategy.pre_update(
            self.liabilities.remaining(base).as_float(),
            self.liabilities.remaining(quote).as_float(),
            trust_limits.get(base, math.inf),
            trust_limits.get(quote, math.inf),
        )
        ops = self.strategy.update_with_ops(buying, selling)
        self.venue.submit_ops(ops)
        self.strategy.post_update()

        if self.fill_tracker is not None:
            self.fill_tracker.poll()
        self.tick_count += 1
        log.info("tick_done", tick=self.tick_count, n_ops=len(ops), live_selling=len(selling), live_buying=len(buying))
        return len(ops)

    def run(self, max_ticks: int | None = None, stop_event: threading.Event | None = None) -> None:
        """Tick until stop_event is set or max_ticks ran. A failed tick is logged and the loop continues."""
        stop = stop_event or threading.Event()
        ticks = 0
        while not stop.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except (OfferbookError, ValueError) as e:
                log.error("tick_failed", tick=self.tick_count + 1, error=str(e), exc_info=True)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            stop.wait(max(0.0, self.tick_interval_sec - (time.monotonic() - started)))
        log.info("trader_stopped", ticks=ticks)


def build_filters(
    settings: Settings,
    pair: TradingPair,
    conn: DuckDBPyConnection | None,
) -> list[SubmitFilter]:
    vf_config = settings.volume_filter_config
    if vf_config is None:
        return []
    if conn is None:
        raise ConfigError("the volume filter needs a trade database connection")
    return [VolumeFilter.make(settings.exchange_name, pair, conn, vf_config)]


def make_trader(
    settings: Settings,
    registry: Registry,
    strategy_name: str,
    conn: DuckDBPyConnection | None = None,
    broadcaster: Broadcaster | None = None,
) -> Trader:
    """Wire venue, liabilities, filters and strategy from settings.

    If the strategy cannot be built, every offer on the book is deleted before the
    ConfigError propagates.
    """
    pair = TradingPair(base=Asset.from_string(settings.base_asset), quote=Asset.from_string(settings.quote_asset))
    if broadcaster is None:
        if not settings.sim:
            raise ConfigError("no ledger broadcaster configured; run with sim = true to use the paper broadcaster")
        balances = {Asset.from_string(code): amount for code, amount in settings.paper_balances.items()}
        broadcaster = PaperBroadcaster(balances)

    liabilities = LiabilityTracker(settings.operational_buffer)
    venue = LedgerVenue(broadcaster, liabilities, base_reserve=settings.base_reserve)
    market_id = None
    if conn is not None:
        market_id = upsert_market(conn, settings.exchange_name, pair.base.code, pair.quote.code)

    ctx = StrategyContext(
        venue=venue,
        liabilities=liabilities,
        pair=pair,
        primary_constraints=venue.get_order_constraints(pair),
        filters=build_filters(settings, pair, conn),
    )
    deps = FactoryDeps(registry=registry, exchange_name=settings.exchange_name, conn=conn)
    try:
        strategy = registry.make_strategy(strategy_name, ctx, settings.strategy_config(strategy_name), deps)
    except ConfigError as e:
        log.error("strategy_init_failed", strategy=strategy_name, error=str(e))
        _delete_all_offers(venue, pair)
        raise

    fill_tracker = None
    handlers = strategy.get_fill_handlers()
    if handlers or conn is not None:
        fill_tracker = FillTracker(venue, handlers, conn, market_id)
    return Trader(venue, liabilities, strategy, pair, fill_tracker, settings.tick_interval_sec)


def _delete_all_offers(venue: LedgerVenue, pair: TradingPair) -> None:
    selling, buying = venue.load_offers(pair.base, pair.quote)
    ops = venue.delete_all_offers([*selling, *buying])
    log.info("deleting_all_offers", n_ops=len(ops))
    venue.submit_ops(ops)
