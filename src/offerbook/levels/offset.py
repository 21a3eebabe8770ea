"""Price offset applied to a feed price."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RateOffset:
    """Percent and absolute adjustment; ``invert`` applies it to 1/price and inverts back."""

    percent: float = 0.0
    absolute: float = 0.0
    percent_first: bool = True
    invert: bool = False

    def is_zero(self) -> bool:
        return self.percent == 0.0 and self.absolute == 0.0

    def apply(self, rate: float) -> tuple[float, bool]:
        """Return (adjusted rate, was modified)."""
        if self.is_zero():
            return rate, False
        if self.invert:
            rate = 1.0 / rate
        if self.percent_first:
            rate = rate * (1.0 + self.percent) + self.absolute
        else:
            rate = (rate + self.absolute) * (1.0 + self.percent)
        if self.invert:
            rate = 1.0 / rate
        return rate, True
