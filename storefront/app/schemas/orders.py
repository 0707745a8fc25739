from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Literal, Union

from pydantic import BaseModel, Field

from storefront.app.db.models.core_types import OrderStatus
from storefront.app.schemas.assets import Asset, asset_from_columns


class Customer(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)


class CartItem(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class PlaceOrderRequest(BaseModel):
    customer: Customer
    items: list[CartItem] = Field(min_length=1)
    # réutiliser le même numéro rend le retry idempotent
    order_number: str | None = Field(default=None, min_length=1, max_length=64)


class OrderLineRead(BaseModel):
    id: int
    order_number: str
    line_no: int
    customer_name: str
    customer_email: str
    product_id: int
    product_name: str
    amount: Decimal
    cost: Decimal
    status: OrderStatus
    date: datetime
    asset: Asset | None = None

    @classmethod
    def from_row(cls, row) -> "OrderLineRead":
        return cls(
            id=row.id,
            order_number=row.order_number,
            line_no=row.line_no,
            customer_name=row.customer_name,
            customer_email=row.customer_email,
            product_id=row.product_id,
            product_name=row.product_name,
            amount=row.amount,
            cost=row.cost,
            status=row.status,
            date=row.date,
            asset=asset_from_columns(row.digital_email, row.digital_password, row.digital_code),
        )


class FailureKind(str, enum.Enum):
    product_not_found = "ProductNotFound"
    out_of_stock = "OutOfStock"
    transient_db_error = "TransientDbError"
    order_number_conflict = "OrderNumberConflict"


class OrderSuccess(BaseModel):
    ok: Literal[True] = True
    order_number: str
    lines: list[OrderLineRead]
    replayed: bool = False


class OrderFailure(BaseModel):
    ok: Literal[False] = False
    kind: FailureKind
    product_id: int | None = None
    detail: str


OrderResult = Union[OrderSuccess, OrderFailure]


class OrderSummary(BaseModel):
    """Vue historique client : une entrée par order_number."""

    order_number: str
    date: datetime
    status: OrderStatus
    total: Decimal
    items: list[OrderLineRead]


class StatusUpdate(BaseModel):
    status: OrderStatus
    actor: str | None = Field(default=None, max_length=255)
