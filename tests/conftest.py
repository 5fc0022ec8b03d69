"""Shared test fixtures for all test modules."""

from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from tests.fakes import FakeClock, FakeErrorClient, FakeHttpClient

from vitalwatch.adapters.storage.in_memory import InMemoryLogStorage
from vitalwatch.core.clock import HostEnvironment
from vitalwatch.core.correlation import clear_correlation_id
from vitalwatch.performance.web_vitals import InMemoryMetricSource


@pytest.fixture(autouse=True)
def _reset_correlation() -> Iterator[None]:
    """Every test starts and ends without a current correlation ID."""
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced clock starting at 2024-01-01T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def host() -> HostEnvironment:
    """Host environment describing a checkout page on a 4g connection."""
    return HostEnvironment(
        url="https://shop.example.com/checkout",
        user_agent="Mozilla/5.0 (test)",
        device_memory=8,
        connection_type="4g",
    )


@pytest.fixture
def metric_source() -> InMemoryMetricSource:
    return InMemoryMetricSource()


@pytest.fixture
def http_client() -> FakeHttpClient:
    """HTTP client double answering 200 OK to every request."""
    return FakeHttpClient()


@pytest.fixture
def error_client() -> FakeErrorClient:
    return FakeErrorClient()


@pytest.fixture
def log_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for log storage tests."""
    return str(tmp_path / "logs.db")


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from vitalwatch.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        """Simple ASGI app that returns 200 OK."""
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI HTTP scope dicts."""
    from vitalwatch.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: list[tuple[bytes, bytes]] | None = None,
        query_string: bytes = b"",
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string,
            "headers": headers or [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(log_storage, metric_source)
            async with asgi_test_client(app) as client:
                response = await client.get("/logs")
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def log_storage() -> InMemoryLogStorage:
    """Fixture providing an empty log storage."""
    return InMemoryLogStorage()


@pytest.fixture
async def asgi_client_with_storage(log_storage, metric_source, asgi_test_client):
    """Fixture combining storage, metric source and ASGI test client.

    Returns a tuple of (client, log_storage, metric_source).
    """
    from vitalwatch.adapters.frameworks.asgi import create_asgi_app

    app = create_asgi_app(log_storage, metric_source)
    async with asgi_test_client(app) as client:
        yield client, log_storage, metric_source
