"""
In-memory stand-ins for the database engine, the usage counter and the audit sink.

``FakeEngine`` emulates a small pool of physical connections. Each one keeps
session-level settings apart from transaction-local ones, and the local ones
are cleared at COMMIT/ROLLBACK the way PostgreSQL does for
``set_config(..., true)``.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from tenantguard.config import settings
from tenantguard.features.audit.sink import AuditEvent, AuditEventKind
from tenantguard.policy import LimitName

Responder = list[dict[str, Any]] | Exception | Callable[..., list[dict[str, Any]]]


@dataclass
class ExecutedStatement:
    connection: int
    sql: str
    parameters: dict[str, Any]
    statement: Any

    @property
    def is_binding(self) -> bool:
        return "set_config" in self.sql


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]] | None):
        self._rows = rows
        self.returns_rows = rows is not None
        self.rowcount = len(rows) if rows is not None else 1

    def mappings(self) -> "FakeResult":
        return self

    def all(self) -> list[dict[str, Any]]:
        return list(self._rows or [])


@dataclass
class FakePhysicalConnection:
    """One server session: session-level settings survive, local ones do not."""

    number: int
    session_settings: dict[str, str] = field(default_factory=dict)
    local_settings: dict[str, str] = field(default_factory=dict)

    def current_setting(self, name: str) -> str | None:
        return self.local_settings.get(name, self.session_settings.get(name))


class FakeTransaction:
    def __init__(self, connection: "FakeConnection"):
        self._connection = connection
        self.is_active = True

    async def commit(self) -> None:
        if self._connection.engine.fail_commit:
            raise OperationalError("COMMIT", {}, Exception("connection reset during commit"))
        self._end("commit")

    async def rollback(self) -> None:
        self._end("rollback")

    def _end(self, outcome: str) -> None:
        self.is_active = False
        self._connection.physical.local_settings.clear()
        self._connection.engine.outcomes.append(outcome)


class FakeConnection:
    def __init__(self, engine: "FakeEngine", physical: FakePhysicalConnection):
        self.engine = engine
        self.physical = physical
        self.closed = False

    async def begin(self) -> FakeTransaction:
        if self.engine.fail_begin:
            raise OperationalError("BEGIN", {}, Exception("server closed the connection"))
        return FakeTransaction(self)

    async def execute(self, statement: Any, parameters: dict[str, Any] | None = None) -> FakeResult:
        sql = " ".join(str(statement).split())
        params = dict(parameters or {})
        self.engine.statements.append(
            ExecutedStatement(self.physical.number, sql, params, statement)
        )

        if "set_config" in sql:
            if self.engine.fail_bind:
                raise OperationalError(sql, params, Exception("permission denied to set parameter"))
            self.physical.local_settings[params["setting"]] = params["value"]
            return FakeResult([{"set_config": params["value"]}])

        if "current_setting" in sql:
            return FakeResult([{"current_setting": self.physical.current_setting(
                settings.tenant_setting_name
            )}])

        if sql == "SELECT 1 AS ok":
            return FakeResult([{"ok": 1}])

        for pattern, responder in self.engine.responses:
            if pattern in sql:
                if isinstance(responder, Exception):
                    raise responder
                if callable(responder):
                    return FakeResult(responder(statement, self.physical))
                return FakeResult(responder)

        if sql.upper().startswith("SELECT") or "RETURNING" in sql.upper():
            return FakeResult([])
        return FakeResult(None)

    async def close(self) -> None:
        self.closed = True
        self.engine.release(self.physical)


class FakeEngine:
    """
    Stand-in for ``AsyncEngine`` with a small connection pool.

    ``respond(pattern, rows)`` scripts the rows returned for statements whose
    SQL contains ``pattern``; the first registered match wins.
    """

    def __init__(self, pool_size: int = 1):
        self.pool_size = pool_size
        self._idle: list[FakePhysicalConnection] = []
        self._created = 0
        self.checked_out = 0
        self.statements: list[ExecutedStatement] = []
        self.outcomes: list[str] = []
        self.responses: list[tuple[str, Responder]] = []
        self.fail_connect = False
        self.fail_begin = False
        self.fail_bind = False
        self.fail_commit = False

    def respond(self, pattern: str, responder: Responder) -> None:
        self.responses.append((pattern, responder))

    async def connect(self) -> FakeConnection:
        if self.fail_connect:
            raise OperationalError("connect", {}, Exception("could not connect to server"))
        if self._idle:
            physical = self._idle.pop()
        elif self._created < self.pool_size:
            self._created += 1
            physical = FakePhysicalConnection(number=self._created)
        else:
            raise SQLAlchemyError("QueuePool limit reached")
        self.checked_out += 1
        return FakeConnection(self, physical)

    def release(self, physical: FakePhysicalConnection) -> None:
        self.checked_out -= 1
        self._idle.append(physical)

    @property
    def physical_connections(self) -> list[FakePhysicalConnection]:
        return list(self._idle)

    def sql(self) -> list[str]:
        return [executed.sql for executed in self.statements]


class StubUsageCounter:
    """Usage counter returning fixed numbers, or raising to simulate an outage."""

    def __init__(self, counts: dict[LimitName, int] | None = None):
        self.counts = dict(counts or {})
        self.error: Exception | None = None
        self.calls: list[tuple[LimitName, int]] = []

    async def count(self, limit: LimitName, tenant_id: int) -> int | None:
        self.calls.append((limit, tenant_id))
        if self.error is not None:
            raise self.error
        return self.counts.get(limit)


class RecordingAuditSink:
    """Keeps audit events in memory for assertions."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: AuditEventKind) -> list[AuditEvent]:
        return [event for event in self.events if event.kind is kind]
