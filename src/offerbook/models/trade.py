"""Trade - an executed fill."""

from __future__ import annotations

from offerbook.models.number import Number
from offerbook.models.order import Order


class Trade(Order):
    """Executed trade on either venue."""

    transaction_id: str | None = None
    cost: Number | None = None  # quote units
    fee: Number | None = None

    @property
    def quote_volume(self) -> Number:
        if self.cost is not None:
            return self.cost
        return self.volume.multiply(self.price)
