"""Exceptions for the fulfillment core."""

from __future__ import annotations


class FulfillmentError(Exception):
    """Base exception for fulfillment errors."""


class AllocationError(FulfillmentError):
    """An allocation could not complete; the enclosing transaction must roll back."""

    kind = "AllocationError"

    def __init__(self, message: str, *, product_id: int | None = None):
        super().__init__(message)
        self.product_id = product_id


class ProductNotFound(AllocationError):
    kind = "ProductNotFound"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", product_id=product_id)


class OutOfStock(AllocationError):
    kind = "OutOfStock"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} has no asset left", product_id=product_id)


class TransientDbError(AllocationError):
    """Lock timeout, deadlock victim, lost connection: the whole call may be retried."""

    kind = "TransientDbError"


class OrderNumberConflict(AllocationError):
    """The order number is already used by an order with another customer or cart."""

    kind = "OrderNumberConflict"

    def __init__(self, order_number: str):
        super().__init__(f"Order number {order_number} is already used by another order")
        self.order_number = order_number


class EmptyCart(FulfillmentError):
    """Raised when an order is placed with no items."""


class MalformedAssetData(FulfillmentError):
    """Raised when a stored asset entry is neither a credential nor a code."""


class OrderNotFound(FulfillmentError):
    def __init__(self, order_number: str):
        super().__init__(f"Order {order_number} not found")
        self.order_number = order_number


class OrderLineNotFound(FulfillmentError):
    def __init__(self, line_id: int):
        super().__init__(f"Order line {line_id} not found")
        self.line_id = line_id


class InvalidStatusChange(FulfillmentError):
    """Raised when a status transition is not allowed for an order line."""
