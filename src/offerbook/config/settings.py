"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from offerbook.errors import ConfigError
from offerbook.filters.volume import VolumeFilterConfig

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"could not parse config file {path}: {e}") from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir() -> Path:
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = config_dir or _find_config_dir()
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if not profile_path.exists():
            raise ConfigError(f"config profile not found: {profile_path}")
        base = _deep_merge(base, _load_toml(profile_path))
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        trader: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        bridge: dict[str, Any] | None = None,
        strategy: dict[str, Any] | None = None,
        volume_filter: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.trader = trader or {}
        self.storage = storage or {}
        self.bridge = bridge or {}
        self.strategy = strategy or {}
        self.volume_filter = volume_filter or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            trader=raw.get("trader"),
            storage=raw.get("storage"),
            bridge=raw.get("bridge"),
            strategy=raw.get("strategy"),
            volume_filter=raw.get("volume_filter"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def exchange_name(self) -> str:
        return self.trader.get("exchange", "ledger")

    @property
    def base_asset(self) -> str:
        return self.trader.get("base_asset", "native")

    @property
    def quote_asset(self) -> str:
        return self.trader.get("quote_asset", "USD")

    @property
    def tick_interval_sec(self) -> float:
        return float(self.trader.get("tick_interval_sec", 5.0))

    @property
    def operational_buffer(self) -> float:
        return float(self.trader.get("operational_buffer", 2.0))

    @property
    def base_reserve(self) -> float:
        return float(self.trader.get("base_reserve", 0.5))

    @property
    def sim(self) -> bool:
        return bool(self.trader.get("sim", True))

    @property
    def paper_balances(self) -> dict[str, float]:
        return {k: float(v) for k, v in (self.trader.get("paper_balances") or {}).items()}

    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/offerbook.duckdb")

    @property
    def bridge_url(self) -> str:
        return self.bridge.get("url", "http://localhost:3000")

    @property
    def bridge_exchanges(self) -> list[str]:
        return list(self.bridge.get("exchanges") or ["binance", "kraken"])

    def bridge_api_key(self, exchange: str) -> dict[str, str]:
        keys = (self.bridge.get("api_keys") or {}).get(exchange) or {}
        return {"api_key": keys.get("key", ""), "secret": keys.get("secret", "")}

    def strategy_config(self, name: str) -> dict[str, Any]:
        return dict(self.strategy.get(name) or {})

    @property
    def volume_filter_config(self) -> VolumeFilterConfig | None:
        if not self.volume_filter:
            return None
        try:
            return VolumeFilterConfig.model_validate(self.volume_filter)
        except ValidationError as e:
            raise ConfigError(f"invalid [volume_filter] section: {e}") from e

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
