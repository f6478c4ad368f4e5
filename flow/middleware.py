"""Built-in middleware: logging, request IDs, timeouts, metrics and panic recovery."""

from __future__ import annotations

import time
import uuid
from typing import Any

from .httpio import Handler, Middleware, Request, ResponseWriter, error, status_text

DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"


def _format_duration(seconds: float) -> str:
    if seconds < 1e-6:
        return f"{seconds * 1e9:.0f}ns"
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


def logging_middleware(logger: Any) -> Middleware:
    """Log the start and completion of every request."""

    def wrap(next_handler: Handler) -> Handler:
        def handle(writer: ResponseWriter, request: Request) -> None:
            start = time.perf_counter()
            logger.info("request start: %s %s", request.method, request.path)
            next_handler(writer, request)
            logger.info(
                "request complete: %s %s in %s",
                request.method,
                request.path,
                _format_duration(time.perf_counter() - start),
            )

        return handle

    return wrap


def request_id_middleware(header_name: str = "") -> Middleware:
    """Ensure every request and response carries a request id header."""
    header_name = header_name or DEFAULT_REQUEST_ID_HEADER

    def wrap(next_handler: Handler) -> Handler:
        def handle(writer: ResponseWriter, request: Request) -> None:
            request_id = request.headers.get(header_name) or ""
            if not request_id:
                request_id = str(uuid.uuid4())
                request.headers[header_name] = request_id
            writer.headers[header_name] = request_id
            next_handler(writer, request)

        return handle

    return wrap


def timeout_middleware(seconds: float) -> Middleware:
    """Give each request a deadline; zero or less disables it."""

    def wrap(next_handler: Handler) -> Handler:
        if seconds <= 0:
            return next_handler

        def handle(writer: ResponseWriter, request: Request) -> None:
            next_handler(writer, request.with_timeout(seconds))

        return handle

    return wrap


def metrics_middleware() -> Middleware:
    """Record handling time in the X-Response-Time header."""

    def wrap(next_handler: Handler) -> Handler:
        def handle(writer: ResponseWriter, request: Request) -> None:
            start = time.perf_counter()
            next_handler(writer, request)
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            writer.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        return handle

    return wrap


def recovery(logger: Any) -> Middleware:
    """Turn an exception raised by a handler into a logged 500 response."""

    def wrap(next_handler: Handler) -> Handler:
        def handle(writer: ResponseWriter, request: Request) -> None:
            try:
                next_handler(writer, request)
            except Exception as exc:
                logger.error("panic: %s", exc)
                error(writer, status_text(500), 500)

        return handle

    return wrap