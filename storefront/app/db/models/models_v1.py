from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.app.db.base import Base
from storefront.app.db.models.core_types import OrderStatus, StockStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


# ---------- CATALOG / ASSET POOL ----------
class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    image: Mapped[str | None] = mapped_column(String(255))

    # stock == len(digital_items), réécrit à chaque persist du pool
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # JSON array, ordre = priorité d'allocation (FIFO)
    digital_items: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    status_label: Mapped[StockStatus] = mapped_column(
        Enum(StockStatus, name="stock_status", values_callable=_enum_values),
        default=StockStatus.low_stock,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_product_stock_nonneg"),)


# ---------- ORDER LEDGER ----------
class Order(Base):
    """Une ligne par unité vendue (pas par ligne de panier)."""

    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    # asset émis : credential (email+password) OU code, jamais les deux
    digital_email: Mapped[str | None] = mapped_column(String(255))
    digital_password: Mapped[str | None] = mapped_column(String(255))
    digital_code: Mapped[str | None] = mapped_column(String(255))

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("order_number", "line_no", name="uq_order_number_line"),
        CheckConstraint("line_no > 0", name="ck_order_line_no_pos"),
        CheckConstraint(
            "digital_code IS NULL OR (digital_email IS NULL AND digital_password IS NULL)",
            name="ck_order_asset_variant",
        ),
        Index("ix_orders_email_date", "customer_email", "date"),
    )

    @property
    def has_asset(self) -> bool:
        return bool(self.digital_code or self.digital_email or self.digital_password)


# ---------- AUDIT ----------
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    actor: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meta: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)
