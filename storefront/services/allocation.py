"""
Allocation transaction.

Transforme un panier en lignes `orders` (une par unité), ou lève une
AllocationError : l'appelant doit alors faire rollback, aucune écriture
partielle ne doit être visible.

Propriétés :
- verrous pris dans l'ordre croissant des product_id (pas d'inversion
  d'ordre entre deux paniers multi-produits)
- retrait FIFO par produit
- stock == len(pool) après chaque persist, jamais négatif
"""

from __future__ import annotations

import secrets
import time
from decimal import Decimal
from typing import Iterable, Sequence

import structlog
from sqlalchemy.orm import Session

from storefront.app.core.config import ShortagePolicy
from storefront.app.db.models.core_types import OrderStatus
from storefront.app.db.models.models_v1 import Order
from storefront.app.schemas.assets import asset_columns
from storefront.app.schemas.orders import CartItem, Customer
from storefront.services import order_ledger
from storefront.services.asset_pool import AssetPoolSnapshot, lock_and_read, persist, withdraw_one
from storefront.services.exceptions import EmptyCart, OrderNotFound, OutOfStock

logger = structlog.get_logger(__name__)


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def lock_pools(db: Session, product_ids: Iterable[int]) -> dict[int, AssetPoolSnapshot]:
    """Verrouille chaque produit une seule fois, dans l'ordre des id."""
    pools: dict[int, AssetPoolSnapshot] = {}
    for pid in sorted({int(pid) for pid in product_ids}):
        pools[pid] = lock_and_read(db, pid)
    return pools


def _persist_withdrawn(
    db: Session,
    locked: dict[int, AssetPoolSnapshot],
    pools: dict[int, AssetPoolSnapshot],
) -> None:
    # pool sans retrait : ligne produit laissée telle quelle (blob illisible compris)
    for pid, snapshot in pools.items():
        if snapshot is not locked[pid]:
            persist(db, snapshot)


def allocate_order(
    db: Session,
    *,
    cart: Sequence[CartItem],
    customer: Customer,
    order_number: str,
    policy: ShortagePolicy = ShortagePolicy.hard_stop,
) -> list[Order]:
    if not cart:
        raise EmptyCart("Cart is empty")

    pools = lock_pools(db, (item.product_id for item in cart))
    locked = dict(pools)

    lines: list[Order] = []
    for item in cart:
        for _ in range(item.quantity):
            snapshot = pools[item.product_id]
            if snapshot.is_empty and policy == ShortagePolicy.hard_stop:
                raise OutOfStock(item.product_id)

            asset, pools[item.product_id] = withdraw_one(snapshot)
            product = snapshot.product

            lines.append(
                Order(
                    order_number=order_number,
                    line_no=len(lines) + 1,
                    customer_name=customer.name,
                    customer_email=customer.email,
                    product_id=int(product.id),
                    product_name=product.name,
                    amount=Decimal(item.unit_price),
                    cost=Decimal(product.cost or 0),
                    status=OrderStatus.completed if asset is not None else OrderStatus.pending,
                    **asset_columns(asset),
                )
            )

    _persist_withdrawn(db, locked, pools)

    order_ledger.append(db, lines)

    logger.info(
        "Order allocated",
        order_number=order_number,
        units=len(lines),
        pending=sum(1 for l in lines if l.status == OrderStatus.pending),
        products=sorted(pools),
    )
    return lines


def fulfill_pending(db: Session, *, order_number: str) -> list[Order]:
    """
    Assigne un asset aux lignes "pending" d'une commande (ordre line_no).

    Les lignes dont le pool est toujours vide restent pending. Retourne
    toutes les lignes de la commande.
    """
    # verrou sur les lignes de la commande avant les produits
    lines = order_ledger.find_by_order_number(db, order_number, for_update=True)
    if not lines:
        raise OrderNotFound(order_number)

    waiting = [l for l in lines if l.status == OrderStatus.pending and not l.has_asset]
    if not waiting:
        return lines

    pools = lock_pools(db, (l.product_id for l in waiting))
    locked = dict(pools)

    assigned = 0
    for line in waiting:
        asset, pools[line.product_id] = withdraw_one(pools[line.product_id])
        if asset is None:
            continue
        for column, value in asset_columns(asset).items():
            setattr(line, column, value)
        line.status = OrderStatus.completed
        assigned += 1

    _persist_withdrawn(db, locked, pools)

    logger.info(
        "Pending lines fulfilled",
        order_number=order_number,
        assigned=assigned,
        still_pending=len(waiting) - assigned,
    )
    return lines
