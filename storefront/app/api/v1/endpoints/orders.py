from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from storefront.app.api.deps import get_db, get_fulfillment_service
from storefront.app.schemas.orders import (
    FailureKind,
    OrderFailure,
    OrderLineRead,
    OrderSuccess,
    OrderSummary,
    PlaceOrderRequest,
    StatusUpdate,
)
from storefront.services import order_ledger
from storefront.services.exceptions import InvalidStatusChange, OrderLineNotFound, OrderNotFound
from storefront.services.fulfillment import FulfillmentService

router = APIRouter(prefix="/orders")

FAILURE_STATUS = {
    FailureKind.product_not_found: 404,
    FailureKind.out_of_stock: 409,
    FailureKind.transient_db_error: 503,
    FailureKind.order_number_conflict: 409,
}


def _respond(result):
    if isinstance(result, OrderFailure):
        return JSONResponse(status_code=FAILURE_STATUS[result.kind], content=result.model_dump(mode="json"))
    return result


@router.post("", response_model=OrderSuccess, responses={404: {"model": OrderFailure}, 409: {"model": OrderFailure}, 503: {"model": OrderFailure}})
def place_order(
    payload: PlaceOrderRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    result = service.place_order(payload.items, payload.customer, order_number=payload.order_number)
    return _respond(result)


@router.get("", response_model=list[OrderSummary])
def list_customer_orders(email: str, db: Session = Depends(get_db)):
    """Historique client, regroupé par order_number (plus récent d'abord)."""
    return order_ledger.summarize_orders(order_ledger.query_by_customer(db, email))


@router.get("/{order_number}", response_model=list[OrderLineRead])
def track_order(order_number: str, db: Session = Depends(get_db)):
    try:
        lines = order_ledger.query_by_order_number(db, order_number)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    return [OrderLineRead.from_row(l) for l in lines]


@router.post("/{order_number}/fulfill", response_model=OrderSuccess, responses={404: {"model": OrderFailure}, 503: {"model": OrderFailure}})
def fulfill_order(
    order_number: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    try:
        result = service.fulfill_pending(order_number)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    return _respond(result)


@router.patch("/lines/{line_id}/status", response_model=OrderLineRead)
def update_line_status(line_id: int, payload: StatusUpdate, db: Session = Depends(get_db)):
    try:
        line = order_ledger.update_status(db, line_id, payload.status, actor=payload.actor)
    except OrderLineNotFound:
        raise HTTPException(status_code=404, detail="Order line not found")
    except InvalidStatusChange as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))

    db.commit()
    db.refresh(line)
    return OrderLineRead.from_row(line)
