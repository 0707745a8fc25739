"""
Fulfillment service.

Point d'entrée unique côté écriture : ouvre la transaction, lance
l'allocation, commit ou rollback, et convertit les erreurs en OrderFailure.
Aucun envoi d'email ici : l'appelant consomme OrderSuccess.lines.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Sequence

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from storefront.app.core.config import Settings, ShortagePolicy
from storefront.app.core.logging import bind_order_context, clear_order_context
from storefront.app.db.models.models_v1 import Order
from storefront.app.db.session import Database
from storefront.app.schemas.orders import (
    CartItem,
    Customer,
    FailureKind,
    OrderFailure,
    OrderLineRead,
    OrderResult,
    OrderSuccess,
)
from storefront.services import allocation, order_ledger
from storefront.services.exceptions import AllocationError, EmptyCart, OrderNumberConflict, TransientDbError

logger = structlog.get_logger(__name__)

_FAILURE_KINDS = {
    "ProductNotFound": FailureKind.product_not_found,
    "OutOfStock": FailureKind.out_of_stock,
    "TransientDbError": FailureKind.transient_db_error,
    "OrderNumberConflict": FailureKind.order_number_conflict,
}


def _matches_request(lines: Sequence[Order], cart: Sequence[CartItem], customer: Customer) -> bool:
    requested: Counter[int] = Counter()
    for item in cart:
        requested[int(item.product_id)] += item.quantity
    stored = Counter(int(l.product_id) for l in lines)
    return stored == requested and all(l.customer_email == customer.email for l in lines)


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, (OperationalError, IntegrityError)) or exc.connection_invalidated


class FulfillmentService:
    def __init__(self, database: Database, settings: Settings | None = None):
        self._database = database
        self._settings = settings or Settings()

    @property
    def shortage_policy(self) -> ShortagePolicy:
        return self._settings.shortage_policy

    def _apply_lock_timeout(self, db: Session) -> None:
        # SET LOCAL : valable pour la transaction courante uniquement
        if self._database.dialect_name == "postgresql" and self._settings.lock_timeout_ms > 0:
            db.execute(text(f"SET LOCAL lock_timeout = '{int(self._settings.lock_timeout_ms)}ms'"))

    def _run(self, order_number: str, work: Callable[[Session], list[Order]]) -> OrderResult:
        with self._database.session() as db:
            try:
                self._apply_lock_timeout(db)
                rows = work(db)
                lines = [OrderLineRead.from_row(r) for r in rows]
                db.commit()
            except AllocationError as exc:
                db.rollback()
                logger.warning("Order aborted", kind=exc.kind, product_id=exc.product_id)
                return OrderFailure(kind=_FAILURE_KINDS[exc.kind], product_id=exc.product_id, detail=str(exc))
            except DBAPIError as exc:
                db.rollback()
                if not _is_transient(exc):
                    raise
                error = TransientDbError(f"Database error, retry the order: {exc.orig!r}")
                logger.warning("Order aborted on database error", kind=error.kind, error=str(exc.orig))
                return OrderFailure(kind=FailureKind.transient_db_error, detail=str(error))
            except Exception:
                db.rollback()
                raise

        return OrderSuccess(order_number=order_number, lines=lines)

    def place_order(
        self,
        cart: Sequence[CartItem],
        customer: Customer,
        *,
        order_number: str | None = None,
    ) -> OrderResult:
        """
        Alloue un asset par unité du panier, tout ou rien.

        Un order_number déjà présent dans le registre n'est pas réalloué :
        les lignes existantes sont renvoyées (retry idempotent) si client et
        quantités par produit correspondent, sinon OrderNumberConflict.
        """
        if not cart:
            raise EmptyCart("Cart is empty")

        if order_number:
            replay = self._replay(order_number, cart, customer)
            if replay is not None:
                return replay

        order_number = order_number or allocation.generate_order_number()
        bind_order_context(order_number=order_number)
        try:
            return self._run(
                order_number,
                lambda db: allocation.allocate_order(
                    db,
                    cart=cart,
                    customer=customer,
                    order_number=order_number,
                    policy=self.shortage_policy,
                ),
            )
        finally:
            clear_order_context()

    def fulfill_pending(self, order_number: str) -> OrderResult:
        bind_order_context(order_number=order_number)
        try:
            return self._run(
                order_number,
                lambda db: allocation.fulfill_pending(db, order_number=order_number),
            )
        finally:
            clear_order_context()

    def _replay(self, order_number: str, cart: Sequence[CartItem], customer: Customer) -> OrderResult | None:
        with self._database.session() as db:
            existing = order_ledger.find_by_order_number(db, order_number)
            if not existing:
                return None
            if not _matches_request(existing, cart, customer):
                # jamais renvoyer les assets d'une autre commande
                error = OrderNumberConflict(order_number)
                logger.warning("Order number reused by a different order", kind=error.kind)
                return OrderFailure(kind=FailureKind.order_number_conflict, detail=str(error))
            logger.info("Idempotent replay", order_number=order_number, units=len(existing))
            return OrderSuccess(
                order_number=order_number,
                lines=[OrderLineRead.from_row(r) for r in existing],
                replayed=True,
            )
