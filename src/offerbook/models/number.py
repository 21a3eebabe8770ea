"""Number - fixed-precision decimal used for every price and volume."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

from offerbook.errors import NumberParseError

DEFAULT_EPSILON = 0.0001


def _to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr gives the shortest round-tripping form (0.1 -> "0.1", not the binary expansion)
        return Decimal(repr(value))
    return Decimal(value)


def _quantize(value: Decimal, precision: int, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-precision), rounding=rounding)


@total_ordering
class Number:
    """Decimal value that carries its own precision (digits after the decimal point).

    The value is always held rounded half-up at ``precision``. Arithmetic between two
    numbers keeps the larger precision; scaling keeps the receiver's precision.
    """

    __slots__ = ("_value", "_precision")

    def __init__(self, value: Decimal | float | int | str, precision: int) -> None:
        if precision < 0:
            raise ValueError(f"precision must be >= 0, was {precision}")
        try:
            d = _to_decimal(value)
            if not d.is_finite():
                raise NumberParseError(f"number is not finite: {value!r}")
            self._value = _quantize(d, precision)
        except InvalidOperation as e:
            raise NumberParseError(f"could not represent {value!r} at precision {precision}") from e
        self._precision = precision

    @classmethod
    def from_float(cls, f: float, precision: int) -> Number:
        return cls(f, precision)

    @classmethod
    def from_string(cls, s: str, precision: int) -> Number:
        """Parse a venue-supplied string. Raises NumberParseError on malformed input."""
        if not isinstance(s, str):
            raise NumberParseError(f"expected a string, got {type(s).__name__}: {s!r}")
        try:
            d = Decimal(s.strip())
        except InvalidOperation as e:
            raise NumberParseError(f"could not parse number from {s!r}") from e
        return cls(d, precision)

    @classmethod
    def truncated(cls, value: Decimal | float | str, precision: int) -> Number:
        """Build a number rounded toward zero at ``precision``."""
        return cls(_quantize(_to_decimal(value), precision, ROUND_DOWN), precision)

    @classmethod
    def zero(cls, precision: int = 7) -> Number:
        return cls(Decimal(0), precision)

    @property
    def precision(self) -> int:
        return self._precision

    @property
    def value(self) -> Decimal:
        return self._value

    def as_float(self) -> float:
        return float(self._value)

    def as_string(self) -> str:
        return f"{self._value:.{self._precision}f}"

    def is_zero(self) -> bool:
        return self._value == 0

    def is_positive(self) -> bool:
        return self._value > 0

    def add(self, other: Number) -> Number:
        return Number(self._value + other._value, max(self._precision, other._precision))

    def subtract(self, other: Number) -> Number:
        return Number(self._value - other._value, max(self._precision, other._precision))

    def multiply(self, other: Number) -> Number:
        return Number(self._value * other._value, max(self._precision, other._precision))

    def divide(self, other: Number) -> Number:
        if other.is_zero():
            raise ZeroDivisionError(f"cannot divide {self} by zero")
        return Number(self._value / other._value, self._precision)

    def scale(self, factor: float) -> Number:
        return Number(self._value * _to_decimal(factor), self._precision)

    def invert(self) -> Number:
        if self.is_zero():
            raise ZeroDivisionError("cannot invert zero")
        return Number(Decimal(1) / self._value, self._precision)

    def cap_precision(self, precision: int) -> Number:
        """Round to min(own precision, precision)."""
        return Number(self._value, min(self._precision, precision))

    def truncate(self, precision: int) -> Number:
        return Number.truncated(self._value, precision)

    def equals_precision_normalized(self, other: Number, epsilon: float = DEFAULT_EPSILON) -> bool:
        """Compare after rounding both sides to the smaller of the two precisions."""
        precision = min(self._precision, other._precision)
        a = _quantize(self._value, precision)
        b = _quantize(other._value, precision)
        return abs(a - b) < _to_decimal(epsilon)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Number):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: Number) -> bool:
        if not isinstance(other, Number):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"Number({self.as_string()!r}, precision={self._precision})"

    def __str__(self) -> str:
        return self.as_string()
