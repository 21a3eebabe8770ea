"""Strategy and exchange registry - string keys to factories, built once at startup."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from offerbook.errors import ConfigError
from offerbook.exchanges.base import Exchange
from offerbook.exchanges.rest_bridge import RestBridgeExchange
from offerbook.feeds import make_feed
from offerbook.filters.volume import VolumeFilter, VolumeFilterConfig, VolumeFilterMode
from offerbook.levels.offset import RateOffset
from offerbook.levels.twap import SellTwapLevelProvider
from offerbook.models import Asset, TradingPair
from offerbook.strategies.base import Strategy, StrategyContext
from offerbook.strategies.delete import DeleteStrategy
from offerbook.strategies.mirror import MirrorConfig, MirrorStrategy
from offerbook.strategies.sell import SellStrategy, SellTwapConfig

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from offerbook.config.settings import Settings

log = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class FactoryDeps:
    """Shared resources a strategy factory may need beyond the strategy context."""

    registry: Registry
    exchange_name: str
    conn: DuckDBPyConnection | None = None


StrategyFactory = Callable[[StrategyContext, dict[str, Any], FactoryDeps], Strategy]


@dataclass(frozen=True)
class StrategyContainer:
    sort_order: int
    description: str
    needs_config: bool
    complexity: str
    make_fn: StrategyFactory


@dataclass(frozen=True)
class ExchangeContainer:
    description: str
    make_fn: Callable[[], Exchange]


class Registry:
    """Holds the strategy and exchange factories. Unknown keys raise ConfigError."""

    def __init__(self) -> None:
        self._strategies: dict[str, StrategyContainer] = {}
        self._exchanges: dict[str, ExchangeContainer] = {}
        self._exchange_cache: dict[str, Exchange] = {}

    def register_strategy(self, name: str, container: StrategyContainer) -> None:
        self._strategies[name] = container

    def register_exchange(self, name: str, container: ExchangeContainer) -> None:
        self._exchanges[name] = container

    def strategies(self) -> list[tuple[str, StrategyContainer]]:
        """Registered strategies ordered by sort order."""
        return sorted(self._strategies.items(), key=lambda item: item[1].sort_order)

    def exchanges(self) -> dict[str, str]:
        return {name: c.description for name, c in sorted(self._exchanges.items())}

    def make_strategy(
        self,
        name: str,
        ctx: StrategyContext,
        config: dict[str, Any] | None,
        deps: FactoryDeps,
    ) -> Strategy:
        container = self._strategies.get(name)
        if container is None:
            raise ConfigError(f"invalid strategy type: {name}", {"available": sorted(self._strategies)})
        if container.needs_config and not config:
            raise ConfigError(f"the '{name}' strategy needs a [strategy.{name}] config section")
        strategy = container.make_fn(ctx, config or {}, deps)
        log.info("strategy_created", strategy=name)
        return strategy

    def make_exchange(self, name: str) -> Exchange:
        """Build (once) the exchange registered under ``name``."""
        if name in self._exchange_cache:
            return self._exchange_cache[name]
        container = self._exchanges.get(name)
        if container is None:
            raise ConfigError(f"invalid exchange type: {name}", {"available": sorted(self._exchanges)})
        exchange = container.make_fn()
        self._exchange_cache[name] = exchange
        return exchange


def parse_model(model: type[M], raw: dict[str, Any], section: str) -> M:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid [{section}] config: {e}") from e


def _make_sell_twap(ctx: StrategyContext, raw: dict[str, Any], deps: FactoryDeps) -> Strategy:
    cfg = parse_model(SellTwapConfig, raw, "strategy.sell_twap")
    if deps.conn is None:
        raise ConfigError("the sell_twap strategy needs a trade database connection")
    feed = make_feed(cfg.price_feed_type, cfg.price_feed_url, deps.registry.make_exchange)
    day_of_week_filters = [
        VolumeFilter.make(
            deps.exchange_name,
            ctx.pair,
            deps.conn,
            VolumeFilterConfig(
                sell_base_asset_cap_in_base_units=cap,
                mode=VolumeFilterMode.EXACT,
                additional_market_ids=cfg.additional_market_ids,
            ),
        )
        for cap in cfg.day_of_week_daily_cap
    ]
    provider = SellTwapLevelProvider(
        price_feed=feed,
        offset=RateOffset(
            percent=cfg.rate_offset_percent,
            absolute=cfg.rate_offset,
            percent_first=cfg.rate_offset_percent_first,
        ),
        order_constraints=ctx.primary_constraints,
        day_of_week_filters=day_of_week_filters,
        hours_to_sell=cfg.hours_to_sell,
        bucket_size_seconds=cfg.bucket_size_seconds,
        surplus_distribution_ceiling=cfg.surplus_distribution_ceiling,
        smoothing_factor=cfg.smoothing_factor,
        min_child_order_fraction=cfg.min_child_order_fraction,
        seed=cfg.seed if cfg.seed is not None else time.time_ns(),
    )
    return SellStrategy(ctx, provider)


def _make_mirror(ctx: StrategyContext, raw: dict[str, Any], deps: FactoryDeps) -> Strategy:
    cfg = parse_model(MirrorConfig, raw, "strategy.mirror")
    exchange = deps.registry.make_exchange(cfg.exchange)
    backing_pair = TradingPair(base=Asset.from_string(cfg.exchange_base), quote=Asset.from_string(cfg.exchange_quote))
    return MirrorStrategy(ctx, cfg, exchange, backing_pair)


def _make_delete(ctx: StrategyContext, raw: dict[str, Any], deps: FactoryDeps) -> Strategy:
    return DeleteStrategy(ctx)


def build_default_registry(settings: Settings) -> Registry:
    registry = Registry()
    registry.register_strategy(
        "sell_twap",
        StrategyContainer(
            sort_order=0,
            description="Sells a daily base-asset target in time buckets at a feed price",
            needs_config=True,
            complexity="Intermediate",
            make_fn=_make_sell_twap,
        ),
    )
    registry.register_strategy(
        "mirror",
        StrategyContainer(
            sort_order=1,
            description="Mirrors an orderbook from another exchange and optionally offsets fills there",
            needs_config=True,
            complexity="Advanced",
            make_fn=_make_mirror,
        ),
    )
    registry.register_strategy(
        "delete",
        StrategyContainer(
            sort_order=2,
            description="Deletes all offers for the configured orderbook",
            needs_config=False,
            complexity="Beginner",
            make_fn=_make_delete,
        ),
    )
    for exchange in settings.bridge_exchanges:
        registry.register_exchange(f"ccxt-{exchange}", _bridge_container(settings, exchange))
    return registry


def _bridge_container(settings: Settings, exchange: str) -> ExchangeContainer:
    def make() -> Exchange:
        return RestBridgeExchange(settings.bridge_url, exchange, **settings.bridge_api_key(exchange))

    return ExchangeContainer(description=f"{exchange} via the REST bridge at {settings.bridge_url}", make_fn=make)
