"""Integration tests for the ASGI correlation ID middleware."""

import asyncio
from collections.abc import Iterator

import pytest

from vitalwatch.adapters.frameworks.asgi import CorrelationIdMiddleware
from vitalwatch.core.correlation import (
    get_current_correlation_id,
    validate_correlation_id,
)
from vitalwatch.core.logger import LoggerConfig, StructuredLogger
from vitalwatch.core.models import CustomLogEntry, ErrorLogEntry

pytestmark = [
    pytest.mark.integration,
    pytest.mark.asgi,
    pytest.mark.tier(2),
    pytest.mark.tra("Adapter.ASGI.Middleware.CorrelationId"),
]

INCOMING_ID = "8F14E45F-CEEA-467F-A9D2-3B2C1A0E9B7D"


@pytest.fixture
def structured() -> Iterator[StructuredLogger]:
    log = StructuredLogger(LoggerConfig(min_level="debug", enable_console=False))
    yield log
    log.destroy()


def status_app(status: int, seen: list[str | None] | None = None):
    """ASGI app that records the current correlation ID and returns status."""

    async def app(scope, receive, send) -> None:
        if seen is not None:
            seen.append(get_current_correlation_id())
        await send({"type": "http.response.start", "status": status, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    return app


class TestCorrelationIdMiddleware:
    """Tests for CorrelationIdMiddleware."""

    async def test_incoming_id_is_propagated(self, asgi_test_client) -> None:
        """A valid header becomes the current ID and is echoed back lowercased."""
        seen: list[str | None] = []
        app = CorrelationIdMiddleware(status_app(200, seen))

        async with asgi_test_client(app) as client:
            response = await client.get("/", headers={"X-Correlation-ID": INCOMING_ID})

        assert seen == [INCOMING_ID.lower()]
        assert response.headers["x-correlation-id"] == INCOMING_ID.lower()
        assert get_current_correlation_id() is None

    @pytest.mark.parametrize("header", [None, "abc-123", "not-a-uuid-at-all"])
    async def test_missing_or_invalid_id_is_generated(
        self, asgi_test_client, header: str | None
    ) -> None:
        """Requests without a valid ID get a freshly generated one."""
        seen: list[str | None] = []
        app = CorrelationIdMiddleware(status_app(200, seen))
        headers = {"X-Correlation-ID": header} if header else {}

        async with asgi_test_client(app) as client:
            response = await client.get("/", headers=headers)

        generated = response.headers["x-correlation-id"]
        assert validate_correlation_id(generated)
        assert generated != header
        assert seen == [generated]

    async def test_custom_header_name(self, asgi_test_client) -> None:
        """The header name is configurable for both directions."""
        app = CorrelationIdMiddleware(status_app(200), header_name="X-Request-ID")

        async with asgi_test_client(app) as client:
            response = await client.get("/", headers={"X-Request-ID": INCOMING_ID})

        assert response.headers["x-request-id"] == INCOMING_ID.lower()
        assert "x-correlation-id" not in response.headers

    async def test_concurrent_requests_are_isolated(self, asgi_test_client) -> None:
        """Each request only sees its own correlation ID."""
        seen: dict[str, str | None] = {}

        async def app(scope, receive, send) -> None:
            await asyncio.sleep(0)
            seen[scope["path"]] = get_current_correlation_id()
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        ids = {
            "/a": "0b6c2a3e-51f4-4d0e-9a55-3f0f2c1d9e88",
            "/b": INCOMING_ID.lower(),
        }
        async with asgi_test_client(CorrelationIdMiddleware(app)) as client:
            await asyncio.gather(
                *(
                    client.get(path, headers={"X-Correlation-ID": value})
                    for path, value in ids.items()
                )
            )

        assert seen == ids

    @pytest.mark.parametrize(
        ("status", "level"), [(200, "info"), (404, "warn"), (503, "error")]
    )
    async def test_requests_are_logged_by_status(
        self, asgi_test_client, structured, status: int, level: str
    ) -> None:
        """One entry per request, leveled by response status."""
        app = CorrelationIdMiddleware(status_app(status), structured_logger=structured)

        async with asgi_test_client(app) as client:
            await client.get("/checkout", headers={"X-Correlation-ID": INCOMING_ID})

        (entry,) = structured.get_entries()
        assert entry.level == level
        assert entry.message == "GET /checkout"
        assert entry.correlation_id == INCOMING_ID.lower()
        assert entry.context["status_code"] == status
        assert entry.context["method"] == "GET"
        assert entry.context["duration_ms"] >= 0

    async def test_exception_is_logged_and_reraised(
        self, asgi_send_capture, asgi_scope, structured
    ) -> None:
        """Application errors are logged with the exception and propagate."""

        async def failing(scope, receive, send) -> None:
            raise RuntimeError("database unavailable")

        app = CorrelationIdMiddleware(failing, structured_logger=structured)
        send, _responses = asgi_send_capture

        async def receive():
            return {"type": "http.request", "body": b""}

        with pytest.raises(RuntimeError):
            await app(asgi_scope(path="/orders"), receive, send)

        (entry,) = structured.get_entries()
        assert isinstance(entry, ErrorLogEntry)
        assert entry.error.message == "database unavailable"
        assert entry.context["status_code"] == 500

    async def test_excluded_paths_are_not_logged(
        self, asgi_test_client, structured
    ) -> None:
        """Excluded paths still get an ID but produce no log entry."""
        app = CorrelationIdMiddleware(
            status_app(200),
            structured_logger=structured,
            exclude_paths=["/health", "/static/*"],
        )

        async with asgi_test_client(app) as client:
            health = await client.get("/health")
            await client.get("/static/app.js")
            await client.get("/orders")

        assert "x-correlation-id" in health.headers
        (entry,) = structured.get_entries()
        assert isinstance(entry, CustomLogEntry)
        assert entry.message == "GET /orders"

    async def test_non_http_scopes_pass_through(self, asgi_send_capture) -> None:
        """Lifespan and websocket scopes are not wrapped."""
        calls: list[str] = []

        async def app(scope, receive, send) -> None:
            calls.append(scope["type"])

        send, responses = asgi_send_capture

        async def receive():
            return {"type": "lifespan.startup"}

        await CorrelationIdMiddleware(app)({"type": "lifespan"}, receive, send)

        assert calls == ["lifespan"]
        assert responses == []
