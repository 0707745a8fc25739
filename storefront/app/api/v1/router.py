from fastapi import APIRouter

from storefront.app.api.v1.endpoints.health import router as health_router
from storefront.app.api.v1.endpoints.orders import router as orders_router
from storefront.app.api.v1.endpoints.products import router as products_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(orders_router, tags=["orders"])
router.include_router(products_router, tags=["products"])
