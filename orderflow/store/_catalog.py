"""
Catalog — read-only price and availability lookup.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from kungfu import Result, Ok, Error
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow._errors import OrderError, OrderErrors
from orderflow.domain import CatalogItem
from orderflow.store._tables import CatalogItemRow, catalog_item_from_row


class Catalog(Protocol):
    """
    Current prices by item id.

    Unknown ids are simply absent from the returned mapping.
    """

    async def get_items(
        self, item_ids: Iterable[str]
    ) -> Result[dict[str, CatalogItem], OrderError]: ...


class SQLCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def get_items(
        self, item_ids: Iterable[str]
    ) -> Result[dict[str, CatalogItem], OrderError]:
        ids = sorted(set(item_ids))
        if not ids:
            return Ok({})
        try:
            async with self._session() as session:
                rows = (
                    await session.execute(
                        select(CatalogItemRow).where(CatalogItemRow.id.in_(ids))
                    )
                ).scalars()
                return Ok({row.id: catalog_item_from_row(row) for row in rows})
        except SQLAlchemyError as e:
            return Error(OrderErrors.store(f"catalog lookup failed: {e}", e))


__all__ = ("Catalog", "SQLCatalog")
