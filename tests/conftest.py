"""
Pytest fixtures for all tests.

Provides:
- An in-memory engine emulating pooled connections and transaction-local
  session settings (no PostgreSQL needed)
- A recording audit sink and a stub usage counter
- Per-module structlog capture
- A test application with dependency overrides and an HTTP client
"""

from collections.abc import Callable
from types import ModuleType
from typing import AsyncGenerator

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from structlog.testing import CapturingLogger, LogCapture

from tenantguard.core.executor import SessionScopedExecutor, get_executor
from tenantguard.features.audit.sink import get_audit_sink
from tenantguard.features.auth.dependencies import get_current_principal
from tenantguard.features.auth.schemas import Principal
from tenantguard.features.permissions.usage import get_usage_counter
from tenantguard.main import create_application
from tests.fakes import FakeEngine, RecordingAuditSink, StubUsageCounter


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine(pool_size=2)


@pytest.fixture
def executor(fake_engine: FakeEngine) -> SessionScopedExecutor:
    return SessionScopedExecutor(fake_engine)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def usage_counter() -> StubUsageCounter:
    return StubUsageCounter()


@pytest.fixture
def app(fake_engine: FakeEngine, audit_sink: RecordingAuditSink, usage_counter: StubUsageCounter):
    """
    Create FastAPI test application.

    Overrides the executor, audit sink and usage counter dependencies.
    Authentication stays real unless ``login_as`` is used.
    """
    application = create_application()

    application.dependency_overrides[get_executor] = lambda: SessionScopedExecutor(fake_engine)
    application.dependency_overrides[get_audit_sink] = lambda: audit_sink
    application.dependency_overrides[get_usage_counter] = lambda: usage_counter

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/me/access")
            assert response.status_code == 401
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login_as(app) -> Callable[[Principal], Principal]:
    """Authenticate every following request as the given principal."""

    def _login(principal: Principal) -> Principal:
        app.dependency_overrides[get_current_principal] = lambda: principal
        return principal

    return _login


@pytest.fixture
def capture_module_logs(monkeypatch) -> Callable[[ModuleType], LogCapture]:
    """
    Record the structlog entries a module emits through its ``logger``.

    Usage:
        logs = capture_module_logs(executor_module)
        ...
        assert logs.entries[0]["event"] == "query_executed"
    """

    def _capture(module: ModuleType) -> LogCapture:
        capture = LogCapture()
        monkeypatch.setattr(module, "logger", structlog.wrap_logger(
            CapturingLogger(),
            processors=[capture],
            wrapper_class=structlog.BoundLogger,
        ))
        return capture

    return _capture
