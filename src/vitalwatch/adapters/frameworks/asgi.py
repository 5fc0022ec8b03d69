"""ASGI generic adapter for correlation propagation and the vitals endpoints.

This adapter provides framework-agnostic ASGI components that work with any
ASGI server (uvicorn, hypercorn, daphne) without requiring a web framework.
"""

import fnmatch
import json
import logging
import math
import time
from collections.abc import Callable, Coroutine
from typing import Any
from urllib.parse import parse_qs

from vitalwatch.adapters.frameworks.query_params import (
    _parse_level_param,
    _parse_since_param,
)
from vitalwatch.core.correlation import (
    correlation_scope,
    generate_correlation_id,
    validate_correlation_id,
)
from vitalwatch.core.encoding.ndjson import encode_logs
from vitalwatch.core.logger import StructuredLogger
from vitalwatch.core.models import RawMetric
from vitalwatch.core.ports import LogStoragePort
from vitalwatch.performance.web_vitals import InMemoryMetricSource

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

DEFAULT_CORRELATION_HEADER = "X-Correlation-ID"

_RATINGS = {"good", "needs-improvement", "poor"}


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    """Parse query string from ASGI scope into parameter dictionary.

    Args:
        scope: ASGI scope dictionary containing request metadata.

    Returns:
        Dictionary mapping parameter names to lists of values.
        Returns empty dict if query_string is missing or empty.
    """
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


def _extract_correlation_id(
    scope: Scope, header_name: str = DEFAULT_CORRELATION_HEADER
) -> str:
    """Extract a valid correlation ID from ASGI scope headers, or generate one.

    Searches for the specified header (case-insensitive). Values that are not
    UUID-v4 strings are ignored.

    Args:
        scope: ASGI scope dictionary containing request metadata.
        header_name: Name of the header to search for.

    Returns:
        Correlation ID string (either from the header or newly generated).
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            candidate = value.decode("utf-8", errors="replace").strip()
            if validate_correlation_id(candidate):
                return candidate.lower()
            break
    return generate_correlation_id()


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
    """
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _send_json(send: Send, status: int, payload: dict[str, Any]) -> None:
    await _send_response(send, status, "application/json", json.dumps(payload))


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _finite_float(value: int | float, field: str) -> float:
    """Convert a JSON number to a finite float.

    Raises:
        ValueError: If the number overflows a float or is NaN/Infinity.
    """
    try:
        number = float(value)
    except OverflowError:
        raise ValueError(f"metric {field} is out of range") from None
    if not math.isfinite(number):
        raise ValueError(f"metric {field} must be a finite number")
    return number


def _parse_raw_metric(item: Any) -> RawMetric:
    """Build a RawMetric from one beacon payload object.

    Raises:
        ValueError: If the object lacks a string name or a finite numeric value.
    """
    if not isinstance(item, dict):
        raise ValueError("metric must be an object")
    name = item.get("name")
    value = item.get("value")
    if not isinstance(name, str) or not name:
        raise ValueError("metric name must be a non-empty string")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("metric value must be a number")
    rating = item.get("rating")
    delta = item.get("delta")
    metric_id = item.get("id")
    has_delta = isinstance(delta, (int, float)) and not isinstance(delta, bool)
    return RawMetric(
        name=name,
        value=_finite_float(value, "value"),
        rating=rating if rating in _RATINGS else None,
        delta=_finite_float(delta, "delta") if has_delta else None,
        id=str(metric_id) if metric_id is not None else None,
    )


def _status_log_level(status_code: int) -> str:
    """Map an HTTP status code to a structured log level."""
    if 400 <= status_code < 500:
        return "warn"
    if status_code >= 500:
        return "error"
    return "info"


class CorrelationIdMiddleware:
    """ASGI middleware that runs each request under a correlation ID.

    The ID comes from the request header when it holds a valid UUID-v4 and is
    generated otherwise. It is current for the whole request (so every log
    entry, metric and error captured while handling it carries it) and is
    echoed in the response headers.

    Example:
        ```python
        app = CorrelationIdMiddleware(app, structured_logger=log)
        ```
    """

    def __init__(
        self,
        app: ASGIApp,
        header_name: str = DEFAULT_CORRELATION_HEADER,
        structured_logger: StructuredLogger | None = None,
        exclude_paths: list[str] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            header_name: Request and response header carrying the ID.
            structured_logger: When given, one entry is logged per request.
            exclude_paths: Paths (exact or wildcard, e.g. "/internal/*") that
                are not logged. They still get a correlation ID.
        """
        self.app = app
        self.header_name = header_name
        self.structured_logger = structured_logger
        self.exclude_paths = exclude_paths or []

    def _path_excluded(self, path: str) -> bool:
        """Check if path matches any pattern in exclude_paths."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI callable interface that processes requests through the wrapped app."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = _extract_correlation_id(scope, self.header_name)
        header = (self.header_name.lower().encode(), correlation_id.encode())
        captured: dict[str, Any] = {"status": None}
        start_time = time.perf_counter()

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                message = {
                    **message,
                    "headers": [*message.get("headers", []), header],
                }
            await send(message)

        with correlation_scope(correlation_id):
            try:
                await self.app(scope, receive, wrapped_send)
            except Exception as exc:
                captured["status"] = 500
                self._log_request(scope, captured["status"], start_time, exc)
                raise
            self._log_request(scope, captured["status"] or 0, start_time)

    def _log_request(
        self,
        scope: Scope,
        status_code: int,
        start_time: float,
        exc: BaseException | None = None,
    ) -> None:
        if self.structured_logger is None or self._path_excluded(scope["path"]):
            return
        message = f"{scope['method']} {scope['path']}"
        context: dict[str, Any] = {
            "method": scope["method"],
            "path": scope["path"],
            "status_code": status_code,
            "duration_ms": (time.perf_counter() - start_time) * 1000,
        }
        level = _status_log_level(status_code)
        if level == "error":
            self.structured_logger.error(message, exc, context)
        elif level == "warn":
            self.structured_logger.warn(message, context)
        else:
            self.structured_logger.info(message, context)


def create_asgi_app(
    log_storage: LogStoragePort,
    metric_source: InMemoryMetricSource,
) -> ASGIApp:
    """Create an ASGI app with /vitals and /logs endpoints.

    POST /vitals accepts a web-vitals beacon (one metric object or a list of
    them) and reports each sample to metric_source. GET /logs returns stored
    log entries as NDJSON, filtered by the optional since and level query
    parameters.

    Args:
        log_storage: Storage adapter implementing LogStoragePort.
        metric_source: Receives the beacon samples.

    Returns:
        ASGI application callable.
    """

    async def vitals(receive: Receive, send: Send) -> None:
        body = await _read_body(receive)
        try:
            payload = json.loads(body or b"null")
            items = payload if isinstance(payload, list) else [payload]
            metrics = [_parse_raw_metric(item) for item in items]
        except ValueError as exc:
            await _send_json(send, 400, {"error": str(exc)})
            return
        for metric in metrics:
            metric_source.report(metric)
        await _send_json(send, 202, {"accepted": len(metrics)})

    async def logs(scope: Scope, send: Send) -> None:
        params = _parse_query_params(scope)
        since = _parse_since_param(params)
        level = _parse_level_param(params)
        try:
            entries = [
                entry async for entry in log_storage.read(since=since, level=level)
            ]
            body = encode_logs(entries)
        except Exception:
            logger.exception("Error encoding logs endpoint")
            await _send_json(send, 500, {"error": "Internal Server Error"})
            return
        await _send_response(send, 200, "application/x-ndjson", body)

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        method = scope.get("method", "GET")

        if path == "/vitals":
            if method != "POST":
                await _send_response(send, 405, "text/plain", "Method Not Allowed")
                return
            await vitals(receive, send)
        elif path == "/logs":
            if method != "GET":
                await _send_response(send, 405, "text/plain", "Method Not Allowed")
                return
            await logs(scope, send)
        else:
            await _send_response(send, 404, "text/plain", "Not Found")

    return app
