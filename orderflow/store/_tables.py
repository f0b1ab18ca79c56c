"""
Database layer — SQLAlchemy models and the engine factory.

Note: Суммы — INTEGER в минимальных единицах (paisa).
Почему: float never appears anywhere near money.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from orderflow.domain import CatalogItem, Order, OrderLine, WebhookAuditEntry
from orderflow.lifecycle import OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════

class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog — read-only to the engine
# ═══════════════════════════════════════════════════════════════════════════════

class CatalogItemRow(Base):
    __tablename__ = "catalog_items"
    __table_args__ = (
        CheckConstraint("price > 0", name="catalog_items_price_positive"),
        Index("ix_catalog_items_category_available", "category", "is_available"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders — version column drives optimistic locking
# ═══════════════════════════════════════════════════════════════════════════════

class OrderRow(Base):
    """
    Orders table.

    Note: Every UPDATE states `WHERE version = :expected` and sets
    `version = version + 1`. rowcount 0 means someone got there first.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount > 0", name="orders_total_amount_positive"),
        Index("ix_orders_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    # Gateway references
    gateway_order_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    gateway_payment_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    lines: Mapped[list["OrderLineRow"]] = relationship(
        back_populates="order",
        order_by="OrderLineRow.position",
        cascade="all, delete-orphan",
    )


class OrderLineRow(Base):
    """Price snapshot taken from the catalog at creation. Never updated."""
    __tablename__ = "order_lines"
    __table_args__ = (
        CheckConstraint("price > 0", name="order_lines_price_positive"),
        CheckConstraint("quantity > 0", name="order_lines_quantity_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    order: Mapped[OrderRow] = relationship(back_populates="lines")


# ═══════════════════════════════════════════════════════════════════════════════
# Webhook Audit — append-only
# ═══════════════════════════════════════════════════════════════════════════════

class WebhookAuditRow(Base):
    """
    One row per inbound gateway delivery.

    Note: Only INSERT. Никаких UPDATE/DELETE.
    Почему: this table is the evidence in a payment dispute.
    """
    __tablename__ = "webhook_audit"
    __table_args__ = (
        Index("ix_webhook_audit_source_event", "source", "event_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # Raw request body, byte for byte: the signature re-verifies against it.
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    signature_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_id: Mapped[str | None] = mapped_column(
        ForeignKey("orders.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Row → Domain
# ═══════════════════════════════════════════════════════════════════════════════

def catalog_item_from_row(row: CatalogItemRow) -> CatalogItem:
    return CatalogItem(
        id=row.id,
        name=row.name,
        price=row.price,
        category=row.category,
        is_available=row.is_available,
    )


def order_from_row(row: OrderRow) -> Order:
    """Lines must already be loaded (selectinload)."""
    return Order(
        id=row.id,
        user_id=row.user_id,
        status=OrderStatus(row.status),
        total_amount=row.total_amount,
        currency=row.currency,
        gateway_order_id=row.gateway_order_id,
        gateway_payment_id=row.gateway_payment_id,
        version=row.version,
        lines=tuple(
            OrderLine(
                id=line.id,
                item_id=line.item_id,
                name=line.name,
                price=line.price,
                quantity=line.quantity,
            )
            for line in row.lines
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def audit_from_row(row: WebhookAuditRow) -> WebhookAuditEntry:
    return WebhookAuditEntry(
        id=row.id,
        source=row.source,
        event_type=row.event_type,
        payload=row.payload,
        signature_valid=row.signature_valid,
        processed=row.processed,
        processing_error=row.processing_error,
        order_id=row.order_id,
        created_at=row.created_at,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════

async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    echo: bool = False,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create database and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=echo)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = (
    "Base",
    "CatalogItemRow",
    "OrderRow",
    "OrderLineRow",
    "WebhookAuditRow",
    "catalog_item_from_row",
    "order_from_row",
    "audit_from_row",
    "create_database",
)
