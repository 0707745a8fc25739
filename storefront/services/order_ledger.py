"""
Order ledger.

Registre append-only des assets émis : une ligne `orders` par unité vendue.
Les lignes ne sont jamais modifiées après création, sauf le statut
(update_status) qui ne touche JAMAIS aux colonnes digital_*.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Iterable, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.app.db.models.core_types import OrderStatus
from storefront.app.db.models.models_v1 import AuditLog, Order, Product
from storefront.app.schemas.assets import asset_from_columns
from storefront.app.schemas.orders import OrderLineRead, OrderSummary
from storefront.app.schemas.products import CustomerSummary, ProductOverview, SoldItem
from storefront.services.asset_pool import decode_pool, status_label_for
from storefront.services.exceptions import (
    InvalidStatusChange,
    OrderLineNotFound,
    OrderNotFound,
    ProductNotFound,
)

logger = structlog.get_logger(__name__)


def append(db: Session, lines: Iterable[Order]) -> None:
    """À appeler uniquement dans la transaction d'allocation (avant commit)."""
    db.add_all(list(lines))
    db.flush()


def query_by_customer(db: Session, email: str) -> list[Order]:
    return list(
        db.execute(
            select(Order)
            .where(Order.customer_email == email)
            .order_by(Order.date.desc(), Order.id.desc())
        )
        .scalars()
        .all()
    )


def find_by_order_number(db: Session, order_number: str, *, for_update: bool = False) -> list[Order]:
    stmt = (
        select(Order)
        .where(Order.order_number == order_number)
        .order_by(Order.line_no.asc())
    )
    if for_update:
        stmt = stmt.with_for_update()
    return list(db.execute(stmt).scalars().all())


def query_by_order_number(db: Session, order_number: str) -> list[Order]:
    lines = find_by_order_number(db, order_number)
    if not lines:
        raise OrderNotFound(order_number)
    return lines


def _order_status(lines: Sequence[Order]) -> OrderStatus:
    # une commande avec au moins une ligne en attente reste "pending"
    statuses = {line.status for line in lines}
    if OrderStatus.pending in statuses:
        return OrderStatus.pending
    if len(statuses) == 1:
        return next(iter(statuses))
    return OrderStatus.completed


def summarize_orders(lines: Iterable[Order]) -> list[OrderSummary]:
    """
    Regroupe les lignes par order_number pour l'historique client.

    L'ordre d'entrée est conservé (query_by_customer : plus récent d'abord).
    """
    grouped: dict[str, list[Order]] = {}
    for line in lines:
        grouped.setdefault(line.order_number, []).append(line)

    summaries = []
    for order_number, order_lines in grouped.items():
        order_lines.sort(key=lambda l: l.line_no)
        summaries.append(
            OrderSummary(
                order_number=order_number,
                date=order_lines[0].date,
                status=_order_status(order_lines),
                total=sum((Decimal(l.amount) for l in order_lines), Decimal("0")),
                items=[OrderLineRead.from_row(l) for l in order_lines],
            )
        )
    return summaries


def product_overview(db: Session, product_id: int) -> ProductOverview:
    """Vue admin "sold products" : assets restants, assets vendus, clients."""
    product = db.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)

    remaining, _ = decode_pool(product.digital_items, product_id=product_id)

    rows = (
        db.execute(
            select(Order)
            .where(Order.product_id == product_id)
            .order_by(Order.date.desc(), Order.id.desc())
        )
        .scalars()
        .all()
    )

    sold = [
        SoldItem(
            line_id=r.id,
            order_number=r.order_number,
            customer_name=r.customer_name,
            customer_email=r.customer_email,
            date=r.date,
            asset=asset_from_columns(r.digital_email, r.digital_password, r.digital_code),
        )
        for r in rows
    ]

    customers: dict[str, CustomerSummary] = {}
    for item in sold:
        if item.customer_email not in customers:
            customers[item.customer_email] = CustomerSummary(
                name=item.customer_name,
                email=item.customer_email,
                date=item.date,
                order_number=item.order_number,
            )

    return ProductOverview(
        product_id=int(product.id),
        name=product.name,
        image=product.image,
        stock=len(remaining),
        status_label=status_label_for(len(remaining)),
        remaining=remaining,
        sold=sold,
        customers=list(customers.values()),
    )


def update_status(
    db: Session,
    line_id: int,
    status: OrderStatus,
    *,
    actor: str | None = None,
) -> Order:
    """
    Transition de statut post-fulfillment (shipped, delivered, cancelled...).

    - ne modifie jamais l'asset assigné
    - "pending" n'est pas une cible valide
    - sans asset, seule l'annulation est permise (fulfill_pending sinon)

    Le commit reste à la charge de l'appelant.
    """
    line = db.execute(select(Order).where(Order.id == line_id).with_for_update()).scalar_one_or_none()
    if line is None:
        raise OrderLineNotFound(line_id)

    if status == OrderStatus.pending:
        raise InvalidStatusChange("Order lines cannot be moved back to pending")
    if not line.has_asset and status != OrderStatus.cancelled:
        raise InvalidStatusChange(f"Order line {line_id} has no asset; fulfill or cancel it")

    previous = line.status
    line.status = status

    db.add(
        AuditLog(
            actor=actor,
            action="order_line.status",
            entity_type="order",
            entity_id=str(line.id),
            meta=json.dumps({"from": previous.value, "to": status.value, "order_number": line.order_number}),
        )
    )
    db.flush()

    logger.info(
        "Order line status updated",
        line_id=line.id,
        order_number=line.order_number,
        previous=previous.value,
        status=status.value,
    )
    return line
