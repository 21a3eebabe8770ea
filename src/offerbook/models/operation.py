"""Operation - create/modify/delete instructions for ledger offers."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from offerbook.models.asset import Asset
from offerbook.models.number import Number


class OperationKind(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class Operation(BaseModel):
    """One offer operation; a delete is an amount-zero operation on an existing offer id."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: OperationKind
    selling: Asset
    buying: Asset
    price: Number
    amount: Number
    offer_id: int | None = None

    @property
    def is_delete(self) -> bool:
        return self.kind is OperationKind.DELETE

    def __str__(self) -> str:
        return (
            f"Operation[{self.kind.value} id={self.offer_id} selling={self.selling} buying={self.buying} "
            f"price={self.price} amount={self.amount}]"
        )
