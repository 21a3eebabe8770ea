"""Exception types raised by the engine."""

from __future__ import annotations

from typing import Any


class OfferbookError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class ConfigError(OfferbookError):
    """Invalid configuration, raised at construction time."""


class NumberParseError(OfferbookError, ValueError):
    """A price or volume string from a venue could not be parsed."""


class SubmissionError(OfferbookError):
    """A venue rejected (or never acknowledged) an order or operation."""


class BucketSequenceError(OfferbookError):
    """The TWAP bucket index moved by something other than +1."""

    def __init__(self, message: str, previous_bucket: int | None = None, new_bucket: int | None = None) -> None:
        super().__init__(message, {"previous_bucket": previous_bucket, "new_bucket": new_bucket})
        self.previous_bucket = previous_bucket
        self.new_bucket = new_bucket


class FeedError(OfferbookError):
    """A price feed could not produce a price."""


class VolumeQueryError(OfferbookError):
    """The daily-volume store could not answer a query."""
