import json
from decimal import Decimal

import pytest
from sqlalchemy import select

from storefront.app.db.models.core_types import OrderStatus, StockStatus
from storefront.app.db.models.models_v1 import AuditLog, Order
from storefront.app.schemas.assets import CodeAsset, CredentialAsset
from storefront.app.schemas.orders import CartItem, Customer
from storefront.services import order_ledger
from storefront.services.exceptions import (
    InvalidStatusChange,
    OrderLineNotFound,
    OrderNotFound,
    ProductNotFound,
)

ALICE = Customer(email="alice@example.com", name="Alice")
BOB = Customer(email="bob@example.com", name="Bob")


def order(service, customer, *entries):
    items = [CartItem(product_id=pid, quantity=qty, unit_price=Decimal(price)) for pid, qty, price in entries]
    return service.place_order(items, customer)


def test_query_by_order_number_in_line_order(service, stored_product, database):
    p = stored_product(items=[{"code": "A"}, {"code": "B"}])
    placed = order(service, ALICE, (p, 2, "3.00"))

    with database.session() as db:
        lines = order_ledger.query_by_order_number(db, placed.order_number)
        assert [l.line_no for l in lines] == [1, 2]
        assert [l.digital_code for l in lines] == ["A", "B"]

        with pytest.raises(OrderNotFound):
            order_ledger.query_by_order_number(db, "ORD-UNKNOWN")


def test_query_by_customer_newest_first_and_summaries(service, stored_product, database):
    p = stored_product(items=[{"code": f"K{i}"} for i in range(5)])
    first = order(service, ALICE, (p, 1, "10.00"))
    order(service, BOB, (p, 1, "10.00"))
    second = order(service, ALICE, (p, 2, "7.50"))

    with database.session() as db:
        lines = order_ledger.query_by_customer(db, "alice@example.com")
        assert {l.customer_email for l in lines} == {"alice@example.com"}
        assert lines[0].order_number == second.order_number
        assert lines[-1].order_number == first.order_number

        summaries = order_ledger.summarize_orders(lines)

    assert [s.order_number for s in summaries] == [second.order_number, first.order_number]
    assert summaries[0].total == Decimal("15.00")
    assert [i.line_no for i in summaries[0].items] == [1, 2]
    assert summaries[0].status == OrderStatus.completed
    assert summaries[1].total == Decimal("10.00")


def test_product_overview_lists_remaining_sold_and_customers(service, stored_product, database):
    p = stored_product(
        name="PS Plus",
        items=[
            {"email": "acc1@x.io", "password": "p1"},
            {"email": "acc2@x.io", "password": "p2"},
            {"email": "acc3@x.io", "password": "p3"},
        ],
    )
    order(service, ALICE, (p, 1, "59.99"))
    order(service, ALICE, (p, 1, "59.99"))

    with database.session() as db:
        overview = order_ledger.product_overview(db, p)

    assert overview.name == "PS Plus"
    assert overview.stock == 1
    assert overview.status_label == StockStatus.low_stock
    assert overview.remaining == [CredentialAsset(email="acc3@x.io", password="p3")]
    assert sorted(s.asset.email for s in overview.sold) == ["acc1@x.io", "acc2@x.io"]
    assert [c.email for c in overview.customers] == ["alice@example.com"]


def test_product_overview_unknown_product(database):
    with database.session() as db:
        with pytest.raises(ProductNotFound):
            order_ledger.product_overview(db, 999)


def test_status_update_keeps_asset_and_writes_audit(service, stored_product, database):
    p = stored_product(items=[{"code": "SHIP-ME"}])
    placed = order(service, ALICE, (p, 1, "1.00"))
    line_id = placed.lines[0].id

    with database.session() as db:
        order_ledger.update_status(db, line_id, OrderStatus.delivered, actor="admin@example.com")
        db.commit()

    with database.session() as db:
        line = db.get(Order, line_id)
        assert line.status == OrderStatus.delivered
        assert line.digital_code == "SHIP-ME"
        assert line.digital_email is None

        audit = db.execute(select(AuditLog)).scalars().one()
        assert audit.entity_id == str(line_id)
        assert audit.actor == "admin@example.com"
        assert json.loads(audit.meta) == {
            "from": "completed",
            "to": "delivered",
            "order_number": placed.order_number,
        }


def test_status_update_rules(pending_service, stored_product, database):
    p = stored_product(items=[])
    placed = order(pending_service, ALICE, (p, 1, "1.00"))
    pending_id = placed.lines[0].id
    assert placed.lines[0].asset is None

    with database.session() as db:
        with pytest.raises(InvalidStatusChange):
            order_ledger.update_status(db, pending_id, OrderStatus.completed)
        with pytest.raises(InvalidStatusChange):
            order_ledger.update_status(db, pending_id, OrderStatus.pending)
        with pytest.raises(OrderLineNotFound):
            order_ledger.update_status(db, pending_id + 100, OrderStatus.shipped)

        cancelled = order_ledger.update_status(db, pending_id, OrderStatus.cancelled)
        assert cancelled.status == OrderStatus.cancelled


def test_summary_of_order_with_pending_line_is_pending(pending_service, stored_product, database):
    p = stored_product(items=[{"code": "ONLY"}])
    placed = order(pending_service, BOB, (p, 2, "4.00"))

    with database.session() as db:
        summaries = order_ledger.summarize_orders(order_ledger.query_by_customer(db, BOB.email))

    assert len(summaries) == 1
    assert summaries[0].order_number == placed.order_number
    assert summaries[0].status == OrderStatus.pending
    assert [i.asset for i in summaries[0].items] == [CodeAsset(code="ONLY"), None]


def test_line_without_asset_can_only_be_cancelled(pending_service, stored_product, database):
    """
    GIVEN une ligne pending sans asset (pool vide)
    THEN shipped/delivered sont refusés, la ligne reste pending et fulfill_pending la voit encore
    """
    p = stored_product(items=[])
    placed = order(pending_service, ALICE, (p, 1, "1.00"))
    line_id = placed.lines[0].id

    with database.session() as db:
        for target in (OrderStatus.shipped, OrderStatus.delivered):
            with pytest.raises(InvalidStatusChange):
                order_ledger.update_status(db, line_id, target)
        db.rollback()

    with database.session() as db:
        assert db.get(Order, line_id).status == OrderStatus.pending
        assert db.execute(select(AuditLog)).scalars().all() == []
