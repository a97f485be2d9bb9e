"""
Session-scoped query execution.

Every call checks out one pooled connection, opens a transaction and, when a
tenant id is supplied, binds it with ``set_config(<setting>, <id>, true)`` as
the first statement. The third argument makes the binding transaction-local,
so it disappears at COMMIT/ROLLBACK and can never be observed by the next
borrower of the same physical connection.

Usage:
    executor = SessionScopedExecutor(db_manager.engine)
    result = await executor.execute(
        "SELECT id, email FROM users WHERE company_id = :company_id",
        {"company_id": ctx.tenant_id},
        tenant_id=ctx.tenant_id,
    )

    async def work(tx: TransactionHandle) -> int:
        await tx.execute(insert_user, values)
        return (await tx.execute(count_users)).scalar()

    await executor.run_transaction(work, tenant_id=ctx.tenant_id)
"""

import re
import time
from collections.abc import Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction
from sqlalchemy.sql import Executable

from tenantguard.config import settings
from tenantguard.core.database import db_manager
from tenantguard.core.exceptions import DataAccessError
from tenantguard.core.metrics import (
    db_queries_total,
    db_query_duration_seconds,
    db_transactions_total,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
Statement = str | Executable

# Failures of the store or the network underneath it
DB_ERRORS = (SQLAlchemyError, OSError, TimeoutError)

_BIND_TENANT = text("SELECT set_config(:setting, :value, true)")

_CREDENTIAL_NAME = r"(?:password\w*|\w*token|secret\w*|api_key)"
_CREDENTIAL_LITERAL = re.compile(
    rf"(\b{_CREDENTIAL_NAME}\b\s*(?:=|:=)\s*)'(?:[^']|'')*'",
    re.IGNORECASE,
)
_CREDENTIAL_KEY = re.compile(rf"^{_CREDENTIAL_NAME}$", re.IGNORECASE)
_MAX_LOGGED_STATEMENT = 200


def redact_statement(statement: Statement) -> str:
    """Render a statement for logs with credential literals masked."""
    sql = " ".join(str(statement).split())
    sql = _CREDENTIAL_LITERAL.sub(r"\1'***'", sql)
    if len(sql) > _MAX_LOGGED_STATEMENT:
        sql = sql[:_MAX_LOGGED_STATEMENT] + "..."
    return sql


def redact_parameters(parameters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Parameter names for logs; values only for non-credential keys of scalar type."""
    if not parameters:
        return {}
    redacted = {}
    for key, value in parameters.items():
        if _CREDENTIAL_KEY.match(key):
            redacted[key] = "***"
        elif isinstance(value, (int, float, bool)) or value is None:
            redacted[key] = value
        else:
            redacted[key] = type(value).__name__
    return redacted


def statement_operation(statement: Statement) -> str:
    """First SQL keyword, used as a low-cardinality metrics label."""
    words = str(statement).split(None, 1)
    return words[0].lower() if words else "unknown"


@dataclass
class QueryResult:
    """Materialized result of one statement."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        row = self.first()
        if row is None:
            return None
        return next(iter(row.values()), None)


class TransactionHandle:
    """
    Restricted view of the connection inside ``run_transaction``.

    Only statement execution is exposed; commit, rollback and release stay
    with the executor.
    """

    def __init__(
        self,
        executor: "SessionScopedExecutor",
        connection: AsyncConnection,
        tenant_id: int | None,
    ) -> None:
        self._executor = executor
        self._connection = connection
        self._open = True
        self.tenant_id = tenant_id

    async def execute(
        self,
        statement: Statement,
        parameters: Mapping[str, Any] | None = None,
    ) -> QueryResult:
        if not self._open:
            raise RuntimeError("Transaction handle used after its transaction ended")
        return await self._executor._run_statement(
            self._connection, statement, parameters, self.tenant_id
        )

    def _close(self) -> None:
        self._open = False


class SessionScopedExecutor:
    """Runs statements and transactions with an optional per-call tenant binding."""

    def __init__(self, engine: AsyncEngine, tenant_setting: str | None = None) -> None:
        self._engine = engine
        self._tenant_setting = tenant_setting or settings.tenant_setting_name

    async def execute(
        self,
        statement: Statement,
        parameters: Mapping[str, Any] | None = None,
        tenant_id: int | None = None,
    ) -> QueryResult:
        """Run one statement in its own transaction and return its rows."""

        async def single(tx: TransactionHandle) -> QueryResult:
            return await tx.execute(statement, parameters)

        return await self.run_transaction(single, tenant_id=tenant_id)

    async def run_transaction(
        self,
        work: Callable[[TransactionHandle], Awaitable[T]],
        tenant_id: int | None = None,
    ) -> T:
        """
        Run ``work`` atomically on one connection.

        Commits when ``work`` returns; rolls back and re-raises when ``work``
        or the commit raises. Database failures surface as DataAccessError,
        anything else ``work`` raises propagates unchanged.
        """
        tenant_id = self._validate_tenant_id(tenant_id)

        async with self._bound_transaction(tenant_id) as (connection, transaction):
            handle = TransactionHandle(self, connection, tenant_id)
            try:
                result = await work(handle)
                try:
                    await transaction.commit()
                except DB_ERRORS as exc:
                    logger.error(
                        "transaction_commit_failed",
                        tenant_id=tenant_id,
                        error=str(exc),
                    )
                    raise DataAccessError("commit") from exc
            except BaseException:
                await self._rollback(transaction, tenant_id)
                db_transactions_total.labels(outcome="rolled_back").inc()
                raise
            finally:
                handle._close()

        db_transactions_total.labels(outcome="committed").inc()
        return result

    async def healthcheck(self) -> bool:
        """Round-trip an unbound statement through the pool."""
        result = await self.execute("SELECT 1 AS ok")
        return result.scalar() == 1

    @asynccontextmanager
    async def _bound_transaction(
        self, tenant_id: int | None
    ) -> AsyncIterator[tuple[AsyncConnection, AsyncTransaction]]:
        """
        Check out a connection, begin, bind; always release.

        The connection is closed (returned to the pool) on every path,
        including a failed binding.
        """
        try:
            connection = await self._engine.connect()
        except DB_ERRORS as exc:
            logger.error("connection_checkout_failed", tenant_id=tenant_id, error=str(exc))
            raise DataAccessError("acquire") from exc

        try:
            try:
                transaction = await connection.begin()
                if tenant_id is not None:
                    await connection.execute(
                        _BIND_TENANT,
                        {"setting": self._tenant_setting, "value": str(tenant_id)},
                    )
            except DB_ERRORS as exc:
                logger.error(
                    "tenant_binding_failed",
                    tenant_id=tenant_id,
                    setting=self._tenant_setting,
                    error=str(exc),
                )
                raise DataAccessError("bind") from exc

            yield connection, transaction
        finally:
            await connection.close()

    async def _run_statement(
        self,
        connection: AsyncConnection,
        statement: Statement,
        parameters: Mapping[str, Any] | None,
        tenant_id: int | None,
    ) -> QueryResult:
        executable = text(statement) if isinstance(statement, str) else statement
        operation = statement_operation(statement)
        bound = "yes" if tenant_id is not None else "no"
        start = time.perf_counter()

        try:
            result = await connection.execute(executable, dict(parameters or {}))
            if result.returns_rows:
                rows = [dict(row) for row in result.mappings().all()]
                query_result = QueryResult(rows=rows, rowcount=len(rows))
            else:
                query_result = QueryResult(rowcount=max(result.rowcount, 0))
        except DB_ERRORS as exc:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            db_queries_total.labels(operation=operation, status="error", bound=bound).inc()
            logger.error(
                "query_failed",
                statement=redact_statement(statement),
                parameters=redact_parameters(parameters),
                duration_ms=duration_ms,
                tenant_id=tenant_id,
                error=str(exc),
            )
            raise DataAccessError("statement") from exc

        duration = time.perf_counter() - start
        duration_ms = round(duration * 1000, 2)
        db_query_duration_seconds.labels(operation=operation).observe(duration)
        db_queries_total.labels(operation=operation, status="ok", bound=bound).inc()

        logger.info(
            "query_executed",
            statement=redact_statement(statement),
            duration_ms=duration_ms,
            rows=query_result.rowcount,
            tenant_id=tenant_id,
        )
        if duration_ms > settings.slow_query_threshold_ms:
            logger.warning(
                "slow_query_detected",
                statement=redact_statement(statement),
                duration_ms=duration_ms,
                threshold_ms=settings.slow_query_threshold_ms,
                tenant_id=tenant_id,
            )

        return query_result

    async def _rollback(self, transaction: AsyncTransaction, tenant_id: int | None) -> None:
        if not transaction.is_active:
            return
        try:
            await transaction.rollback()
        except DB_ERRORS as exc:
            # Connection is discarded on close; the original error is re-raised by the caller.
            logger.error("transaction_rollback_failed", tenant_id=tenant_id, error=str(exc))
        else:
            logger.warning("transaction_rolled_back", tenant_id=tenant_id)

    @staticmethod
    def _validate_tenant_id(tenant_id: int | None) -> int | None:
        if tenant_id is None:
            return None
        if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
            logger.error("tenant_binding_rejected", tenant_id=repr(tenant_id))
            raise DataAccessError("bind", details={"reason": "invalid tenant id"})
        return tenant_id


def get_executor() -> SessionScopedExecutor:
    """
    FastAPI dependency for the query executor.

    Usage:
        @router.get("/users")
        async def list_users(executor: Annotated[SessionScopedExecutor, Depends(get_executor)]):
            ...
    """
    return SessionScopedExecutor(db_manager.engine)
