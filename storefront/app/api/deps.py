from __future__ import annotations

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from storefront.app.db.session import Database
from storefront.services.fulfillment import FulfillmentService


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()


def get_fulfillment_service(request: Request) -> FulfillmentService:
    return request.app.state.fulfillment
