from __future__ import annotations

import json
from decimal import Decimal

import structlog
from sqlalchemy import select

from storefront.app.core.config import Settings
from storefront.app.core.logging import configure_logging
from storefront.app.db.base import Base
from storefront.app.db.models.models_v1 import Product
from storefront.app.db.session import Database
from storefront.services.asset_pool import status_label_for

logger = structlog.get_logger(__name__)

DIGITAL_PRODUCTS = [
    {
        "name": "God of War Ragnarok",
        "price": Decimal("69.99"),
        "cost": Decimal("45.00"),
        "digital_items": [
            {"code": "GOWR-1111-2222-3333"},
            {"code": "GOWR-4444-5555-6666"},
            {"code": "GOWR-7777-8888-9999"},
        ],
    },
    {
        "name": "The Last of Us Part II Remastered",
        "price": Decimal("49.99"),
        "cost": Decimal("30.00"),
        "digital_items": [
            {"code": "TLOU-AAAA-BBBB-CCCC"},
            {"code": "TLOU-DDDD-EEEE-FFFF"},
        ],
    },
    {
        "name": "PlayStation Plus Essential (12 mois)",
        "price": Decimal("59.99"),
        "cost": Decimal("40.00"),
        "digital_items": [
            {"email": "psplus.001@example.com", "password": "Seed-Pass-001"},
            {"email": "psplus.002@example.com", "password": "Seed-Pass-002"},
        ],
    },
]


def run_seed(database: Database) -> None:
    Base.metadata.create_all(bind=database.engine)

    with database.session() as db:
        for entry in DIGITAL_PRODUCTS:
            exists = db.scalar(select(Product).where(Product.name == entry["name"]))
            if exists:
                continue

            items = entry["digital_items"]
            db.add(
                Product(
                    name=entry["name"],
                    price=entry["price"],
                    cost=entry["cost"],
                    digital_items=json.dumps(items),
                    stock=len(items),
                    status_label=status_label_for(len(items)),
                )
            )
        db.commit()

    logger.info("Seed OK", products=len(DIGITAL_PRODUCTS))


if __name__ == "__main__":
    configure_logging()
    database = Database.from_url(Settings.from_env().database_url)
    try:
        run_seed(database)
    finally:
        database.dispose()
