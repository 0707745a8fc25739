from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.app.api.deps import get_db
from storefront.app.schemas.products import ProductOverview
from storefront.services import order_ledger
from storefront.services.exceptions import ProductNotFound

router = APIRouter(prefix="/products")


@router.get("/{product_id}/overview", response_model=ProductOverview)
def get_product_overview(product_id: int, db: Session = Depends(get_db)):
    """
    Vue admin (READ ONLY)
    - assets restants dans le pool
    - assets vendus + clients
    """
    try:
        return order_ledger.product_overview(db, product_id)
    except ProductNotFound:
        raise HTTPException(status_code=404, detail="Product not found")
