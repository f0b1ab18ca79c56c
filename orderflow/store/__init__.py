"""
Store — SQLAlchemy persistence for orders, catalog and webhook audit.

    session_factory, engine = await create_database("postgresql+asyncpg://...")

    catalog = SQLCatalog(session_factory)
    journal = AuditJournal(session_factory)

Tables:

    catalog_items   read-only price list
    orders          version column, unique gateway references
    order_lines     price snapshots, FK → orders
    webhook_audit   append-only, FK → orders (nullable)
"""

from orderflow.store._tables import (
    Base,
    CatalogItemRow,
    OrderRow,
    OrderLineRow,
    WebhookAuditRow,
    catalog_item_from_row,
    order_from_row,
    audit_from_row,
    create_database,
)
from orderflow.store._catalog import (
    Catalog,
    SQLCatalog,
)
from orderflow.store._journal import (
    AuditJournal,
    stage_audit,
)

__all__ = (
    # Tables
    "Base",
    "CatalogItemRow",
    "OrderRow",
    "OrderLineRow",
    "WebhookAuditRow",
    "catalog_item_from_row",
    "order_from_row",
    "audit_from_row",
    "create_database",
    # Catalog
    "Catalog",
    "SQLCatalog",
    # Journal
    "AuditJournal",
    "stage_audit",
)
