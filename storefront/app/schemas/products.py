from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from storefront.app.db.models.core_types import StockStatus
from storefront.app.schemas.assets import Asset


class SoldItem(BaseModel):
    line_id: int
    order_number: str
    customer_name: str
    customer_email: str
    date: datetime
    asset: Asset | None = None


class CustomerSummary(BaseModel):
    name: str
    email: str
    date: datetime
    order_number: str


class ProductOverview(BaseModel):
    product_id: int
    name: str
    image: str | None = None
    stock: int
    status_label: StockStatus
    remaining: list[Asset]
    sold: list[SoldItem]
    customers: list[CustomerSummary]
