from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.app.api.v1.router import router as v1_router
from storefront.app.core.config import Settings
from storefront.app.core.logging import configure_logging
from storefront.app.db.session import Database
from storefront.services.fulfillment import FulfillmentService


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        db = database or Database.from_url(settings.database_url)
        app.state.database = db
        app.state.fulfillment = FulfillmentService(db, settings)
        try:
            yield
        finally:
            # handle fourni par l'appelant : c'est lui qui le ferme
            if database is None:
                db.dispose()

    app = FastAPI(title="Storefront Fulfillment", version="0.1.0", lifespan=lifespan)
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
