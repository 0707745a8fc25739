"""
Asset pool access.

Un produit = un pool ordonné d'assets non émis + un compteur de stock.
Toute mutation passe par lock_and_read -> withdraw_one -> persist, dans la
transaction de l'appelant (le verrou est relâché au commit / rollback).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.app.db.models.core_types import StockStatus
from storefront.app.db.models.models_v1 import Product
from storefront.app.schemas.assets import CodeAsset, CredentialAsset
from storefront.services.exceptions import MalformedAssetData, ProductNotFound

logger = structlog.get_logger(__name__)

LOW_STOCK_THRESHOLD = 10


def status_label_for(stock: int) -> StockStatus:
    if stock > LOW_STOCK_THRESHOLD:
        return StockStatus.in_stock
    return StockStatus.low_stock


def _filled(value: Any) -> bool:
    return value is not None and value != ""


def decode_asset(raw: Any) -> CredentialAsset | CodeAsset:
    """
    Décode une entrée du pool.

    Les clés supplémentaires des anciens seeds (type, status, ...) sont
    ignorées ; une entrée qui mélange code et credential est rejetée.
    """
    if not isinstance(raw, dict):
        raise MalformedAssetData(f"asset entry must be an object, got {type(raw).__name__}")

    has_code = _filled(raw.get("code"))
    has_credential = _filled(raw.get("email")) or _filled(raw.get("password"))

    try:
        if has_code and not has_credential:
            return CodeAsset(code=str(raw["code"]))
        if has_credential and not has_code:
            return CredentialAsset(email=raw.get("email"), password=raw.get("password"))
    except ValidationError as exc:
        raise MalformedAssetData(str(exc)) from exc

    raise MalformedAssetData("asset entry must hold either a code or an email/password pair")


def decode_pool(raw: str | None, *, product_id: int) -> tuple[list[CredentialAsset | CodeAsset], int]:
    """Retourne (assets valides dans l'ordre FIFO, nombre d'entrées écartées)."""
    if not raw:
        return [], 0

    try:
        entries = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable asset pool, treating as empty", product_id=product_id)
        return [], 0

    if not isinstance(entries, list):
        logger.warning("Asset pool is not a JSON array, treating as empty", product_id=product_id)
        return [], 0

    assets = []
    discarded = 0
    for position, entry in enumerate(entries):
        try:
            assets.append(decode_asset(entry))
        except MalformedAssetData as exc:
            discarded += 1
            logger.warning(
                "Skipping malformed asset entry",
                product_id=product_id,
                position=position,
                reason=str(exc),
            )
    return assets, discarded


def encode_pool(assets: list[CredentialAsset | CodeAsset]) -> str:
    return json.dumps([a.to_storage() for a in assets])


@dataclass(frozen=True)
class AssetPoolSnapshot:
    product: Product
    assets: tuple[CredentialAsset | CodeAsset, ...] = field(default_factory=tuple)
    discarded: int = 0

    @property
    def product_id(self) -> int:
        return int(self.product.id)

    @property
    def stock(self) -> int:
        return len(self.assets)

    @property
    def status_label(self) -> StockStatus:
        return status_label_for(self.stock)

    @property
    def is_empty(self) -> bool:
        return not self.assets


def lock_and_read(db: Session, product_id: int) -> AssetPoolSnapshot:
    """
    SELECT ... FOR UPDATE sur la ligne produit.

    Bloque les autres transactions qui verrouillent le même produit jusqu'au
    commit / rollback de l'appelant.
    """
    product = (
        db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if product is None:
        raise ProductNotFound(product_id)

    assets, discarded = decode_pool(product.digital_items, product_id=product_id)
    if product.stock != len(assets):
        # stock "legacy" désynchronisé : le pool fait foi
        logger.info(
            "Stock counter out of sync with asset pool",
            product_id=product_id,
            stock=product.stock,
            assets=len(assets),
        )
    return AssetPoolSnapshot(product=product, assets=tuple(assets), discarded=discarded)


def withdraw_one(snapshot: AssetPoolSnapshot) -> tuple[CredentialAsset | CodeAsset | None, AssetPoolSnapshot]:
    """Retire la tête du pool (FIFO). Pool vide -> (None, snapshot inchangé)."""
    if snapshot.is_empty:
        return None, snapshot
    head, rest = snapshot.assets[0], snapshot.assets[1:]
    return head, replace(snapshot, assets=rest)


def persist(db: Session, snapshot: AssetPoolSnapshot) -> None:
    product = snapshot.product
    product.digital_items = encode_pool(list(snapshot.assets))
    product.stock = snapshot.stock
    product.status_label = snapshot.status_label
    db.flush()
