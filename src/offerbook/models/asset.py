"""Asset, TradingPair - value-typed market identifiers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

NATIVE_CODE = "native"


class Asset(BaseModel):
    """A tradable asset. Credit assets on the ledger venue also carry an issuer."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1)
    issuer: str | None = None

    @classmethod
    def native(cls) -> Asset:
        return cls(code=NATIVE_CODE)

    @classmethod
    def from_string(cls, s: str) -> Asset:
        """Parse "native", "CODE" or "CODE:ISSUER"."""
        s = s.strip()
        if s == NATIVE_CODE:
            return cls.native()
        code, _, issuer = s.partition(":")
        return cls(code=code, issuer=issuer or None)

    @property
    def is_native(self) -> bool:
        return self.code == NATIVE_CODE and self.issuer is None

    def __str__(self) -> str:
        if self.issuer:
            return f"{self.code}:{self.issuer}"
        return self.code


class TradingPair(BaseModel):
    """Base/quote pair. Prices are quoted in units of quote per unit of base."""

    model_config = ConfigDict(frozen=True)

    base: Asset
    quote: Asset

    def to_string(self, delimiter: str = "/") -> str:
        return f"{self.base.code}{delimiter}{self.quote.code}"

    def __str__(self) -> str:
        return self.to_string()
