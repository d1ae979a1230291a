"""
Request models for the order HTTP adapter.

These describe input shape only. Business rules (quantity >= 1, positive
prices, known statuses) are enforced by the order store so that every
caller, HTTP or not, gets the same ValidationError.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from oms.order_state import NewLineItem


class LineItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ref: str = Field(..., alias="productRef", description="Product reference")
    name: str = Field(..., description="Display name")
    quantity: int = Field(..., description="Units to add")
    unit_price: Decimal = Field(..., alias="unitPrice", description="Price per unit")

    def to_new_item(self) -> NewLineItem:
        return NewLineItem(
            product_ref=self.product_ref,
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class CreateOrderIn(BaseModel):
    owner: str = Field(..., description="Opaque customer reference")
    items: List[LineItemIn] = Field(default_factory=list)


class UpdateQuantityIn(BaseModel):
    quantity: int = Field(..., description="New quantity; 0 removes the line")


class StatusIn(BaseModel):
    status: str = Field(..., description="Target status")
