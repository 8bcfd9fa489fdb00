"""Tests for structured logging and request IDs."""
import asyncio

import structlog

from scheduling.logging_config import (
    RequestIDMiddleware,
    generate_request_id,
    get_logger,
    setup_structured_logging,
)


class TestStructuredLogging:

    def test_logger_methods_work(self):
        """Should log key-value events without raising."""
        setup_structured_logging(log_level="INFO")
        logger = get_logger(__name__)

        logger.info("appointment_booked", appointment_id=1, ordinal=1)
        logger.warning("notification_dropped", recipient="7")

    def test_generate_request_id_format(self):
        request_id = generate_request_id()

        assert request_id.startswith("req-")
        assert len(request_id) == 16  # "req-" (4) + 12 hex chars

    def test_request_ids_are_unique(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100


class TestRequestIDMiddleware:
    """The middleware tags responses and binds the ID while the request runs."""

    def test_adds_header_and_binds_context(self):
        seen = {}

        async def app(scope, receive, send):
            seen.update(structlog.contextvars.get_contextvars())
            await send({"type": "http.response.start", "status": 200, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        sent = []

        async def send(message):
            sent.append(message)

        async def receive():
            return {"type": "http.request"}

        middleware = RequestIDMiddleware(app)
        asyncio.run(middleware({"type": "http", "method": "GET", "path": "/health"}, receive, send))

        headers = dict(sent[0]["headers"])
        assert headers[b"x-request-id"].decode() == seen["request_id"]
        assert structlog.contextvars.get_contextvars() == {}

    def test_passes_through_non_http_scopes(self):
        called = []

        async def app(scope, receive, send):
            called.append(scope["type"])

        asyncio.run(RequestIDMiddleware(app)({"type": "lifespan"}, None, None))

        assert called == ["lifespan"]
