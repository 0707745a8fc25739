import json
import os

import pytest
from sqlalchemy import event, select
from sqlalchemy.orm import Session

from storefront.app.core.config import Settings, ShortagePolicy
from storefront.app.db.base import Base
from storefront.app.db.models.models_v1 import Order, Product
from storefront.app.db.session import Database
from storefront.services.asset_pool import status_label_for
from storefront.services.fulfillment import FulfillmentService


@pytest.fixture(scope="function")
def database(tmp_path) -> Database:
    """
    Base isolée par test.

    SQLite fichier par défaut (les threads des tests concurrents partagent
    le même fichier) ; TEST_DATABASE_URL permet de viser un vrai Postgres.
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'storefront.db'}"
    db = Database.from_url(url)
    Base.metadata.drop_all(bind=db.engine)
    Base.metadata.create_all(bind=db.engine)
    try:
        yield db
    finally:
        Base.metadata.drop_all(bind=db.engine)
        db.dispose()


@pytest.fixture(scope="function")
def db_session(database) -> Session:
    """
    Session DB isolée par test.

    Utilise une transaction englobante + SAVEPOINT.
    TOUT est rollback à la fin du test, même après commit().
    """
    connection = database.engine.connect()
    transaction = connection.begin()

    session = database.session_factory(bind=connection)

    # --- SAVEPOINT pattern ---
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess, trans):
        if trans.nested and not trans._parent.nested:
            sess.begin_nested()

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


def _new_product(name, items, stock, price, cost) -> Product:
    items = list(items)
    stock = len(items) if stock is None else stock
    return Product(
        name=name,
        price=price,
        cost=cost,
        digital_items=json.dumps(items),
        stock=stock,
        status_label=status_label_for(stock),
    )


@pytest.fixture
def make_product(db_session):
    """Produit ajouté dans db_session (flush, pas de commit)."""

    def _make(name="Test product", items=(), stock=None, price="19.99", cost="10.00", raw_items=None):
        product = _new_product(name, items, stock, price, cost)
        if raw_items is not None:
            product.digital_items = raw_items
        db_session.add(product)
        db_session.flush()
        return product

    return _make


@pytest.fixture
def stored_product(database):
    """Produit committé dans sa propre session ; retourne son id."""

    def _store(name="Test product", items=(), stock=None, price="19.99", cost="10.00", raw_items=None):
        with database.session() as db:
            product = _new_product(name, items, stock, price, cost)
            if raw_items is not None:
                product.digital_items = raw_items
            db.add(product)
            db.commit()
            return int(product.id)

    return _store


@pytest.fixture
def pool_state(database):
    """(stock, digital_items brut, status_label) lus hors de toute transaction de test."""

    def _read(product_id):
        with database.session() as db:
            product = db.get(Product, product_id)
            return product.stock, product.digital_items, product.status_label

    return _read


@pytest.fixture
def ledger_rows(database):
    def _read():
        with database.session() as db:
            rows = db.execute(select(Order).order_by(Order.id)).scalars().all()
            return [
                (r.order_number, r.product_id, r.digital_email, r.digital_password, r.digital_code, r.status)
                for r in rows
            ]

    return _read


@pytest.fixture
def settings(database) -> Settings:
    return Settings(database_url=database.engine.url.render_as_string(hide_password=False), lock_timeout_ms=2000)


@pytest.fixture
def service(database, settings) -> FulfillmentService:
    return FulfillmentService(database, settings)


@pytest.fixture
def pending_service(database) -> FulfillmentService:
    return FulfillmentService(
        database,
        Settings(database_url=database.engine.url.render_as_string(hide_password=False), shortage_policy=ShortagePolicy.allow_pending),
    )
