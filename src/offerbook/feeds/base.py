"""Price feed capability."""

from __future__ import annotations

from abc import ABC, abstractmethod

from offerbook.errors import ConfigError


class PriceFeed(ABC):
    """Anything that can produce a single price (quote per base)."""

    @abstractmethod
    def get_price(self) -> float:
        """Return the current price. Raises FeedError when it cannot."""
        ...


class FixedFeed(PriceFeed):
    """Always returns the configured price."""

    def __init__(self, price: float) -> None:
        if price <= 0:
            raise ConfigError(f"fixed feed price must be positive, was {price}")
        self.price = price

    @classmethod
    def from_url(cls, url: str) -> FixedFeed:
        try:
            return cls(float(url))
        except ValueError:
            raise ConfigError(f"fixed feed expects a number, got {url!r}") from None

    def get_price(self) -> float:
        return self.price
