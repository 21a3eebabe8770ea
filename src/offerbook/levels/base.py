"""Level provider protocol."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from offerbook.models import Level

if TYPE_CHECKING:
    from offerbook.strategies.base import FillHandler


class LevelProvider(ABC):
    """Produces the price/amount levels a level-driven strategy should quote."""

    @abstractmethod
    def get_levels(self, max_asset_base: float, max_asset_quote: float) -> list[Level]:
        ...

    def get_fill_handlers(self) -> list[FillHandler]:
        return []
