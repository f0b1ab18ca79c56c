"""
Webhook journal — append-only audit of gateway deliveries.

Two ways in:
    journal.record(draft, ...)         own transaction
    stage_audit(session, draft, ...)   inside a caller's transaction

The second one is how a successful state change and its audit row commit
together.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from kungfu import Result, Ok, Error
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow._errors import OrderError, OrderErrors
from orderflow.domain import AuditDraft, WebhookAuditEntry
from orderflow.store._tables import WebhookAuditRow, audit_from_row


def stage_audit(
    session: AsyncSession,
    draft: AuditDraft,
    *,
    processed: bool,
    order_id: str | None = None,
    error: str | None = None,
) -> WebhookAuditRow:
    row = WebhookAuditRow(
        id=str(uuid.uuid4()),
        source=draft.source,
        event_type=draft.event_type,
        payload=draft.payload,
        signature_valid=draft.signature_valid,
        processed=processed,
        processing_error=error,
        order_id=order_id,
        created_at=datetime.now(),
    )
    session.add(row)
    return row


class AuditJournal:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def record(
        self,
        draft: AuditDraft,
        *,
        processed: bool,
        order_id: str | None = None,
        error: str | None = None,
    ) -> Result[WebhookAuditEntry, OrderError]:
        try:
            async with self._session() as session, session.begin():
                row = stage_audit(
                    session, draft, processed=processed, order_id=order_id, error=error
                )
            return Ok(audit_from_row(row))
        except SQLAlchemyError as e:
            return Error(OrderErrors.store(f"audit insert failed: {e}", e))

    async def for_order(self, order_id: str) -> Result[list[WebhookAuditEntry], OrderError]:
        return await self._select(
            select(WebhookAuditRow).where(WebhookAuditRow.order_id == order_id)
        )

    async def recent(self, limit: int = 50) -> Result[list[WebhookAuditEntry], OrderError]:
        return await self._select(select(WebhookAuditRow).limit(limit))

    async def _select(self, stmt) -> Result[list[WebhookAuditEntry], OrderError]:
        stmt = stmt.order_by(WebhookAuditRow.created_at.desc(), WebhookAuditRow.id)
        try:
            async with self._session() as session:
                rows = (await session.execute(stmt)).scalars()
                return Ok([audit_from_row(row) for row in rows])
        except SQLAlchemyError as e:
            return Error(OrderErrors.store(f"audit query failed: {e}", e))


__all__ = ("AuditJournal", "stage_audit")
