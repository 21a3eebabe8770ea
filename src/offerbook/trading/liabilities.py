"""Per-asset capital commitments for one reconciliation pass."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from offerbook.models.asset import Asset
from offerbook.models.number import Number

log = structlog.get_logger(__name__)

DEFAULT_PRECISION = 7

Amount = float | Number


def _zero() -> Number:
    return Number.zero(DEFAULT_PRECISION)


@dataclass
class Liabilities:
    """Capital earmarked by operations built so far in the current pass."""

    selling: Number = field(default_factory=_zero)
    buying: Number = field(default_factory=_zero)


class LiabilityTracker:
    """Running committed totals per asset, in fixed-precision decimals.

    Rebuilt from account balances before every pass with ``reset``. ``reserve`` never
    rejects; callers check ``remaining`` / ``remaining_capacity`` first. Assets without
    a trust limit have unlimited buying capacity (``remaining_capacity`` is None).
    """

    def __init__(self, operational_buffer: Amount = 0.0, precision: int = DEFAULT_PRECISION) -> None:
        self.precision = precision
        self.operational_buffer = self._num(operational_buffer)
        self._balances: dict[Asset, Number] = {}
        self._trust_limits: dict[Asset, Number] = {}
        self._liabilities: dict[Asset, Liabilities] = {}

    def _num(self, value: Amount) -> Number:
        if isinstance(value, Number):
            return value.cap_precision(self.precision)
        return Number.from_float(float(value), self.precision)

    def reset(
        self,
        balances: Mapping[Asset, Amount],
        trust_limits: Mapping[Asset, Amount] | None = None,
    ) -> None:
        self._balances = {asset: self._num(b) for asset, b in balances.items()}
        self._trust_limits = {
            asset: self._num(t)
            for asset, t in (trust_limits or {}).items()
            if isinstance(t, Number) or math.isfinite(t)
        }
        self._liabilities = {}
        log.debug("liabilities_reset", balances={str(a): str(b) for a, b in self._balances.items()})

    def reserve(
        self,
        selling_asset: Asset,
        buying_asset: Asset,
        sell_amount: Amount,
        buy_amount: Amount,
        fee_buffer: Amount = 0.0,
    ) -> None:
        """Add to the committed totals. ``fee_buffer`` is charged to the native asset."""
        selling = self._get(selling_asset)
        selling.selling = selling.selling.add(self._num(sell_amount))
        buying = self._get(buying_asset)
        buying.buying = buying.buying.add(self._num(buy_amount))
        fee = self._num(fee_buffer)
        if not fee.is_zero():
            native = self._get(Asset.native())
            native.selling = native.selling.add(fee)

    def liabilities(self, asset: Asset) -> Liabilities:
        current = self._liabilities.get(asset)
        if current is None:
            return Liabilities()
        return Liabilities(selling=current.selling, buying=current.buying)

    def balance(self, asset: Asset) -> Number:
        return self._balances.get(asset, Number.zero(self.precision))

    def remaining(self, asset: Asset) -> Number:
        """Tradable balance minus committed selling minus the safety buffer (native only)."""
        left = self.balance(asset).subtract(self.liabilities(asset).selling)
        if asset.is_native:
            left = left.subtract(self.operational_buffer)
        return left

    def remaining_capacity(self, asset: Asset) -> Number | None:
        """How much more of ``asset`` can be bought before hitting its trust limit."""
        limit = self._trust_limits.get(asset)
        if limit is None:
            return None
        return limit.subtract(self.balance(asset)).subtract(self.liabilities(asset).buying)

    def can_sell(self, asset: Asset, amount: Amount) -> bool:
        return self.remaining(asset) >= self._num(amount)

    def can_buy(self, asset: Asset, amount: Amount) -> bool:
        capacity = self.remaining_capacity(asset)
        return capacity is None or capacity >= self._num(amount)

    def _get(self, asset: Asset) -> Liabilities:
        if asset not in self._liabilities:
            self._liabilities[asset] = Liabilities()
        return self._liabilities[asset]
