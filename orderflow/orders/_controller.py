"""
ConcurrencyController — the only writer of order state.

Every mutation states the version it observed. The write itself is
`UPDATE orders ... WHERE id = :id AND version = :expected`, so even a
backend without row locks performs at most one state-changing write.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta

import structlog
from kungfu import Result, Ok, Error
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from orderflow._errors import OrderError, OrderErrorKind, OrderErrors
from orderflow.domain import AuditDraft, CartLine, Order, PaymentCommit
from orderflow.idempotency import normalize_cart
from orderflow.lifecycle import (
    INITIAL,
    OrderStatus,
    capture_steps,
    ensure_transition,
    is_paid,
)
from orderflow.store import Catalog, OrderLineRow, OrderRow, order_from_row, stage_audit

log = structlog.get_logger(__name__)

# Postgres: serialization_failure, deadlock_detected.
_CONCURRENT_SQLSTATES = frozenset({"40001", "40P01"})

DEFAULT_PAGE = 50
MAX_PAGE = 100

_ADMIN_TARGETS = frozenset(
    {OrderStatus.ACCEPTED, OrderStatus.DELIVERED, OrderStatus.AWAITING_PAYMENT}
)


class ConcurrencyController:
    """
    Owns all mutating access to orders.

    Example:
        controller = ConcurrencyController(session_factory, SQLCatalog(session_factory))

        match await controller.create_order(user_id, lines):
            case Ok(order):
                await controller.set_gateway_order_id(order.id, "order_X", order.version)

        match await controller.commit_payment(order.id, "pay_Y", order.version):
            case Ok(commit):
                commit.applied   # True for exactly one caller
            case Error(e) if e.kind == OrderErrorKind.VERSION_CONFLICT:
                ...              # re-read and decide

    Note: Domain failures come back as Error values and the transaction still
    commits (it has written nothing). Только неожиданные исключения
    откатывают транзакцию.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: Catalog,
        *,
        currency: str = "INR",
        timeout: timedelta = timedelta(seconds=5),
    ) -> None:
        self._session = session_factory
        self._catalog = catalog
        self._currency = currency
        self._timeout = timeout

    # ───────────────────────────────────────────────────────────────────────────
    # create_order
    # ───────────────────────────────────────────────────────────────────────────

    async def create_order(
        self,
        user_id: str,
        cart_lines: Sequence[CartLine],
        order_id: str | None = None,
    ) -> Result[Order, OrderError]:
        """
        Price the cart from the catalog and insert order + lines atomically.

        Client prices and totals never reach this method.
        """
        if not cart_lines:
            return Error(OrderErrors.validation("cart is empty"))
        for line in cart_lines:
            if line.quantity <= 0:
                return Error(
                    OrderErrors.validation(
                        f"quantity for item {line.item_id} must be positive"
                    )
                )

        lines = normalize_cart(cart_lines)

        match await self._catalog.get_items(line.item_id for line in lines):
            case Error(e):
                return Error(e)
            case Ok(items):
                pass

        for line in lines:
            item = items.get(line.item_id)
            if item is None:
                return Error(OrderErrors.validation(f"unknown item {line.item_id}"))
            if not item.is_available:
                return Error(
                    OrderErrors.validation(f"item {item.name} is not available")
                )

        now = datetime.now()
        new_id = order_id or str(uuid.uuid4())
        row = OrderRow(
            id=new_id,
            user_id=user_id,
            status=INITIAL.value,
            total_amount=sum(items[l.item_id].price * l.quantity for l in lines),
            currency=self._currency,
            version=1,
            created_at=now,
            updated_at=now,
            lines=[
                OrderLineRow(
                    id=str(uuid.uuid4()),
                    position=position,
                    item_id=line.item_id,
                    name=items[line.item_id].name,
                    price=items[line.item_id].price,
                    quantity=line.quantity,
                    created_at=now,
                )
                for position, line in enumerate(lines)
            ],
        )

        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            session.add(row)
            await session.flush()
            return Ok(order_from_row(row))

        result = await self._tx(op, what="create order")
        if isinstance(result, Ok):
            log.info(
                "order created",
                order_id=new_id,
                user_id=user_id,
                total_amount=row.total_amount,
                lines=len(lines),
            )
        return result

    # ───────────────────────────────────────────────────────────────────────────
    # set_gateway_order_id
    # ───────────────────────────────────────────────────────────────────────────

    async def set_gateway_order_id(
        self,
        order_id: str,
        gateway_order_id: str,
        expected_version: int,
    ) -> Result[Order, OrderError]:
        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            row = await _load(session, order_id)
            if row is None:
                return Error(OrderErrors.not_found("order", order_id))
            if row.version != expected_version:
                return Error(OrderErrors.version_conflict(order_id, expected_version))

            match ensure_transition(OrderStatus(row.status), OrderStatus.AWAITING_PAYMENT):
                case Error(e):
                    return Error(e)
                case Ok(_):
                    pass

            written = await _write(
                session,
                order_id,
                expected_version,
                status=OrderStatus.AWAITING_PAYMENT.value,
                gateway_order_id=gateway_order_id,
            )
            if not written:
                return Error(OrderErrors.version_conflict(order_id, expected_version))
            return Ok(order_from_row(await _load(session, order_id)))

        result = await self._tx(op, what="set gateway order id")
        match result:
            case Ok(order):
                log.info(
                    "gateway order recorded",
                    order_id=order_id,
                    gateway_order_id=gateway_order_id,
                    version=order.version,
                )
            case Error(e) if e.kind == OrderErrorKind.VERSION_CONFLICT:
                log.warning(
                    "stale version on gateway order update",
                    order_id=order_id,
                    expected_version=expected_version,
                )
        return result

    # ───────────────────────────────────────────────────────────────────────────
    # commit_payment — exactly once
    # ───────────────────────────────────────────────────────────────────────────

    async def commit_payment(
        self,
        order_id: str,
        gateway_payment_id: str,
        expected_version: int,
        audit: AuditDraft | None = None,
    ) -> Result[PaymentCommit, OrderError]:
        """
        Record a captured payment.

        Lock row → already paid? success, no write → version check →
        conditional write per table edge. `applied` tells the one caller that
        wrote apart from everyone who arrived second.

        A capture on PAYMENT_FAILED reopens the attempt first
        (→ AWAITING_PAYMENT → PAID), so the version moves by two.

        The optional audit draft is inserted in the same transaction whenever
        the result is Ok.
        """

        async def op(session: AsyncSession) -> Result[PaymentCommit, OrderError]:
            row = await _load(session, order_id, lock=True)
            if row is None:
                return Error(OrderErrors.not_found("order", order_id))

            if is_paid(OrderStatus(row.status)):
                return Ok(_already_paid(session, row, audit))

            if row.version != expected_version:
                return Error(OrderErrors.version_conflict(order_id, expected_version))

            match capture_steps(OrderStatus(row.status)):
                case Error(e):
                    return Error(e)
                case Ok(steps):
                    pass

            version = expected_version
            for step in steps:
                values: dict[str, object] = {"status": step.value}
                if step == OrderStatus.PAID:
                    values["gateway_payment_id"] = gateway_payment_id
                if await _write(session, order_id, version, **values):
                    version += 1
                    continue
                if version != expected_version:
                    raise _RolledBack(
                        OrderErrors.version_conflict(order_id, expected_version)
                    )
                # Lost the conditional write on a backend without row locks.
                row = await _load(session, order_id)
                if row is not None and is_paid(OrderStatus(row.status)):
                    return Ok(_already_paid(session, row, audit))
                return Error(OrderErrors.version_conflict(order_id, expected_version))

            row = await _load(session, order_id)
            if audit is not None:
                stage_audit(session, audit, processed=True, order_id=order_id)
            return Ok(PaymentCommit(order=order_from_row(row), applied=True))

        result = await self._tx(op, what="commit payment", serializable=True)
        match result:
            case Ok(commit) if commit.applied:
                log.info(
                    "payment committed",
                    order_id=order_id,
                    gateway_payment_id=gateway_payment_id,
                    version=commit.order.version,
                )
            case Ok(commit):
                log.info(
                    "payment already recorded",
                    order_id=order_id,
                    status=commit.order.status.value,
                )
            case Error(e):
                log.warning(
                    "payment commit rejected",
                    order_id=order_id,
                    expected_version=expected_version,
                    error_kind=e.kind.name,
                )
        return result

    async def reconcile_payment(
        self,
        order_id: str,
        gateway_payment_id: str,
        audit: AuditDraft | None = None,
        attempts: int = 3,
    ) -> Result[PaymentCommit, OrderError]:
        """
        Re-read → commit_payment, retrying on VERSION_CONFLICT.

        Both completion paths go through here, so a conflict caused by the
        other path resolves into the idempotent short-circuit on retry.
        """
        last: Result[PaymentCommit, OrderError] = Error(
            OrderErrors.version_conflict(order_id, 0)
        )
        for _ in range(max(1, attempts)):
            match await self.get_order(order_id):
                case Error(e):
                    return Error(e)
                case Ok(order):
                    pass

            last = await self.commit_payment(
                order_id, gateway_payment_id, order.version, audit
            )
            match last:
                case Error(e) if e.kind == OrderErrorKind.VERSION_CONFLICT:
                    continue
                case _:
                    return last
        return last

    # ───────────────────────────────────────────────────────────────────────────
    # Other transitions
    # ───────────────────────────────────────────────────────────────────────────

    async def update_status(
        self,
        order_id: str,
        next_: OrderStatus,
        expected_version: int,
    ) -> Result[Order, OrderError]:
        """
        Administrative progression: ACCEPTED, DELIVERED and the retry
        PAYMENT_FAILED → AWAITING_PAYMENT.

        PAID is reachable only via commit_payment, PAYMENT_FAILED only via
        mark_payment_failed, and AWAITING_PAYMENT needs a gateway order.
        """

        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            row = await _load(session, order_id)
            if row is None:
                return Error(OrderErrors.not_found("order", order_id))
            current = OrderStatus(row.status)

            if next_ not in _ADMIN_TARGETS:
                return Error(OrderErrors.invalid_transition(current, next_))
            match ensure_transition(current, next_):
                case Error(e):
                    return Error(e)
                case Ok(_):
                    pass
            if next_ == OrderStatus.AWAITING_PAYMENT and (
                current != OrderStatus.PAYMENT_FAILED or row.gateway_order_id is None
            ):
                return Error(OrderErrors.invalid_transition(current, next_))

            if row.version != expected_version:
                return Error(OrderErrors.version_conflict(order_id, expected_version))
            if not await _write(session, order_id, expected_version, status=next_.value):
                return Error(OrderErrors.version_conflict(order_id, expected_version))
            return Ok(order_from_row(await _load(session, order_id)))

        result = await self._tx(op, what="update status")
        if isinstance(result, Ok):
            log.info(
                "order status changed",
                order_id=order_id,
                new_status=next_.value,
                version=result.value.version,
            )
        return result

    async def mark_payment_failed(
        self,
        order_id: str,
        audit: AuditDraft | None = None,
    ) -> Result[Order, OrderError]:
        """
        Move to PAYMENT_FAILED unless the order is already paid.

        A failure notice that arrives after a capture is a no-op success,
        never a regression.
        """

        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            row = await _load(session, order_id, lock=True)
            if row is None:
                return Error(OrderErrors.not_found("order", order_id))
            current = OrderStatus(row.status)

            if is_paid(current) or current == OrderStatus.PAYMENT_FAILED:
                if audit is not None:
                    stage_audit(session, audit, processed=True, order_id=order_id)
                return Ok(order_from_row(row))

            match ensure_transition(current, OrderStatus.PAYMENT_FAILED):
                case Error(e):
                    return Error(e)
                case Ok(_):
                    pass

            if not await _write(
                session, order_id, row.version, status=OrderStatus.PAYMENT_FAILED.value
            ):
                return Error(OrderErrors.version_conflict(order_id, row.version))
            if audit is not None:
                stage_audit(session, audit, processed=True, order_id=order_id)
            return Ok(order_from_row(await _load(session, order_id)))

        result = await self._tx(op, what="mark payment failed", serializable=True)
        if isinstance(result, Ok):
            log.info(
                "payment failure handled",
                order_id=order_id,
                status=result.value.status.value,
            )
        return result

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str) -> Result[Order, OrderError]:
        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            row = await _load(session, order_id)
            if row is None:
                return Error(OrderErrors.not_found("order", order_id))
            return Ok(order_from_row(row))

        return await self._read(op, what="get order")

    async def get_by_gateway_order_id(
        self, gateway_order_id: str
    ) -> Result[Order, OrderError]:
        async def op(session: AsyncSession) -> Result[Order, OrderError]:
            row = (
                await session.execute(
                    _order_query().where(OrderRow.gateway_order_id == gateway_order_id)
                )
            ).scalar_one_or_none()
            if row is None:
                return Error(OrderErrors.not_found("gateway order", gateway_order_id))
            return Ok(order_from_row(row))

        return await self._read(op, what="get order by gateway id")

    async def list_user_orders(self, user_id: str) -> Result[list[Order], OrderError]:
        """Newest first."""

        async def op(session: AsyncSession) -> Result[list[Order], OrderError]:
            rows = (
                await session.execute(
                    _order_query()
                    .where(OrderRow.user_id == user_id)
                    .order_by(OrderRow.created_at.desc(), OrderRow.id)
                )
            ).scalars()
            return Ok([order_from_row(row) for row in rows])

        return await self._read(op, what="list user orders")

    async def list_orders(
        self, limit: int = DEFAULT_PAGE, offset: int = 0
    ) -> Result[list[Order], OrderError]:
        limit = min(max(limit, 1), MAX_PAGE)
        offset = max(offset, 0)

        async def op(session: AsyncSession) -> Result[list[Order], OrderError]:
            rows = (
                await session.execute(
                    _order_query()
                    .order_by(OrderRow.created_at.desc(), OrderRow.id)
                    .limit(limit)
                    .offset(offset)
                )
            ).scalars()
            return Ok([order_from_row(row) for row in rows])

        return await self._read(op, what="list orders")

    # ───────────────────────────────────────────────────────────────────────────
    # Transactions
    # ───────────────────────────────────────────────────────────────────────────

    async def _tx[T](
        self,
        op: Callable[[AsyncSession], Awaitable[Result[T, OrderError]]],
        *,
        what: str,
        serializable: bool = False,
    ) -> Result[T, OrderError]:
        try:
            async with asyncio.timeout(self._timeout.total_seconds()):
                async with self._session() as session, session.begin():
                    if serializable:
                        await session.connection(
                            execution_options={"isolation_level": "SERIALIZABLE"}
                        )
                    return await op(session)
        except _RolledBack as e:
            return Error(e.error)
        except TimeoutError as e:
            return Error(OrderErrors.store(f"{what} timed out", e))
        except DBAPIError as e:
            if _sqlstate(e) in _CONCURRENT_SQLSTATES:
                return Error(
                    OrderError(
                        OrderErrorKind.VERSION_CONFLICT,
                        f"{what}: concurrent transaction won",
                        e,
                    )
                )
            log.error("store failure", operation=what, error=str(e))
            return Error(OrderErrors.store(f"{what} failed", e))
        except SQLAlchemyError as e:
            log.error("store failure", operation=what, error=str(e))
            return Error(OrderErrors.store(f"{what} failed", e))

    async def _read[T](
        self,
        op: Callable[[AsyncSession], Awaitable[Result[T, OrderError]]],
        *,
        what: str,
    ) -> Result[T, OrderError]:
        try:
            async with asyncio.timeout(self._timeout.total_seconds()):
                async with self._session() as session:
                    return await op(session)
        except TimeoutError as e:
            return Error(OrderErrors.store(f"{what} timed out", e))
        except SQLAlchemyError as e:
            log.error("store failure", operation=what, error=str(e))
            return Error(OrderErrors.store(f"{what} failed", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Statements
# ═══════════════════════════════════════════════════════════════════════════════


def _order_query():
    return (
        select(OrderRow)
        .options(selectinload(OrderRow.lines))
        .execution_options(populate_existing=True)
    )


async def _load(
    session: AsyncSession, order_id: str, lock: bool = False
) -> OrderRow | None:
    stmt = _order_query().where(OrderRow.id == order_id)
    if lock:
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def _write(
    session: AsyncSession, order_id: str, expected_version: int, **values: object
) -> bool:
    """Conditional update. False means the version moved."""
    result = await session.execute(
        update(OrderRow)
        .where(OrderRow.id == order_id, OrderRow.version == expected_version)
        .values(version=OrderRow.version + 1, updated_at=datetime.now(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


class _RolledBack(Exception):
    """Raised inside a transaction to undo its writes and return `error`."""

    def __init__(self, error: OrderError) -> None:
        super().__init__(error.message)
        self.error = error


def _already_paid(
    session: AsyncSession, row: OrderRow, audit: AuditDraft | None
) -> PaymentCommit:
    if audit is not None:
        stage_audit(session, audit, processed=True, order_id=row.id)
    return PaymentCommit(order=order_from_row(row), applied=False)


def _sqlstate(e: DBAPIError) -> str | None:
    orig = e.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


__all__ = ("ConcurrencyController", "DEFAULT_PAGE", "MAX_PAGE")
