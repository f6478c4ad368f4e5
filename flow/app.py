"""Application bootstrap: middleware stack, router, HTTP server and lifecycle."""

from __future__ import annotations

import logging
import signal
import socketserver
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from .httpio import Handler, Middleware, Request, ResponseWriter, error, wsgi_app
from .middleware import (
    logging_middleware,
    metrics_middleware,
    recovery,
    request_id_middleware,
    timeout_middleware,
)
from .session import SessionManager, default_session_manager
from .view import ViewManager

Option = Callable[["App"], None]

DEFAULT_ADDR = ":3000"
DEFAULT_VIEWS_DIR = "views"
DEFAULT_SHUTDOWN_TIMEOUT = 10.0

_IDLE, _RUNNING, _STOPPED = 0, 1, 2


class AppAlreadyRunningError(RuntimeError):
    """Raised when start or run is called on an App that has already been started."""


@dataclass
class Model:
    """Standard fields that generated models can include."""

    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


def _not_found(writer: ResponseWriter, request: Request) -> None:
    error(writer, "404 page not found", 404)


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen {addr}: missing port in address")
    try:
        number = int(port) if port else 0
    except ValueError:
        raise ValueError(f"listen {addr}: invalid port {port!r}") from None
    return host.strip("[]"), number


class _ThreadingServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = False
    allow_reuse_address = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        return None


@dataclass(eq=False)
class App:
    """A web application: a router wrapped in middleware and served over HTTP."""

    name: str
    addr: str = DEFAULT_ADDR
    read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 120.0
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    logger: Any = field(default_factory=lambda: logging.getLogger("flow"))
    views: ViewManager | None = field(default_factory=lambda: ViewManager(DEFAULT_VIEWS_DIR))
    sessions: SessionManager | None = field(default_factory=default_session_manager)
    _router: Handler = field(default=_not_found, init=False, repr=False)
    _middleware: list[Middleware] = field(default_factory=list, init=False, repr=False)
    _db: Any = field(default=None, init=False, repr=False)
    _state: int = field(default=_IDLE, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _ready: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _thread: threading.Thread | None = field(default=None, init=False, repr=False)
    _httpd: WSGIServer | None = field(default=None, init=False, repr=False)

    @property
    def db(self) -> Any:
        """The attached database connection, or None."""
        return self._db

    def set_db(self, db: Any) -> None:
        self._db = db

    def use(self, middleware: Middleware) -> None:
        """Append middleware; the first registered is the outer-most."""
        self._middleware.append(middleware)

    def set_router(self, handler: Handler | None) -> None:
        """Replace the router; None restores the default, which answers 404."""
        self._router = handler if handler is not None else _not_found

    def handler(self) -> Handler:
        """The router wrapped in all registered middleware."""
        composed = self._router
        for middleware in reversed(self._middleware):
            composed = middleware(composed)
        return composed

    def serve(self, writer: ResponseWriter, request: Request) -> None:
        """Handle one request through the composed handler."""
        self.handler()(writer, request)

    def __call__(
        self, environ: Mapping[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        return wsgi_app(self.handler())(environ, start_response)

    def start(self) -> None:
        """Start serving in a background thread and return immediately."""
        with self._lock:
            if self._state != _IDLE:
                raise AppAlreadyRunningError("app: already running")
            self._state = _RUNNING
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._serve_forever, name=f"{self.name}-server", daemon=True
        )
        self._thread.start()

    def _serve_forever(self) -> None:
        self.logger.info("starting %s on %s", self.name, self.addr)
        handler_class = type(
            "_RequestHandler", (_QuietHandler,), {"timeout": self.read_timeout or None}
        )
        wsgi = wsgi_app(self.handler())
        try:
            host, port = _split_addr(self.addr)
            httpd = make_server(
                host, port, wsgi, server_class=_ThreadingServer, handler_class=handler_class
            )
        except (OSError, ValueError) as exc:
            self.logger.error("server error: %s", exc)
            with self._lock:
                self._state = _STOPPED
            self._ready.set()
            return

        with self._lock:
            stopped = self._state == _STOPPED
            if not stopped:
                self._httpd = httpd
        self._ready.set()
        if stopped:
            httpd.server_close()
            return
        try:
            httpd.serve_forever(poll_interval=0.05)
        except Exception as exc:  # the server must never die silently
            self.logger.error("server error: %s", exc)
        finally:
            with self._lock:
                self._state = _STOPPED

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop the server gracefully; safe to call more than once."""
        if self._thread is None:
            return
        with self._lock:
            if self._state == _STOPPED:
                return
            self._state = _STOPPED

        if timeout is None or timeout <= 0:
            timeout = self.shutdown_timeout if self.shutdown_timeout > 0 else DEFAULT_SHUTDOWN_TIMEOUT
        deadline = time.monotonic() + timeout

        self.logger.info("shutting down %s", self.name)
        self._ready.wait(timeout)
        httpd = self._httpd
        if httpd is not None:

            def stop() -> None:
                httpd.shutdown()
                httpd.server_close()

            stopper = threading.Thread(target=stop, name=f"{self.name}-shutdown", daemon=True)
            stopper.start()
            stopper.join(max(0.0, deadline - time.monotonic()))
            if stopper.is_alive():
                self.logger.error(
                    "shutdown error: timed out after %ss; attempting force close", timeout
                )
                raise TimeoutError(f"shutdown: timed out after {timeout}s")
        self._thread.join(max(0.0, deadline - time.monotonic()))
        self.logger.info("shutdown complete")

    def run(self, stop: threading.Event | None = None) -> None:
        """Serve until `stop` is set or SIGINT/SIGTERM arrives, then shut down."""
        self.start()
        received: list[int] = []
        wake = threading.Event()

        def on_signal(signum: int, frame: Any) -> None:
            received.append(signum)
            wake.set()

        previous: dict[int, Any] = {}
        if threading.current_thread() is threading.main_thread():
            for name in ("SIGINT", "SIGTERM"):
                signum = getattr(signal, name, None)
                if signum is not None:
                    previous[signum] = signal.signal(signum, on_signal)
        try:
            while True:
                if stop is not None and stop.is_set():
                    self.logger.info("context canceled, shutting down")
                    break
                if received:
                    self.logger.info(
                        "received signal %s, shutting down", signal.Signals(received[0]).name
                    )
                    break
                wake.wait(0.05)
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        timeout = self.shutdown_timeout if self.shutdown_timeout > 0 else DEFAULT_SHUTDOWN_TIMEOUT
        self.shutdown(timeout)


def new(name: str, *args: Option) -> App:
    """Create an App and apply the given options in order; nothing is started."""
    app = App(name=name)
    for option in args:
        option(app)
    return app


def _ensure_views(app: App) -> ViewManager:
    if app.views is None:
        app.views = ViewManager(DEFAULT_VIEWS_DIR)
    return app.views


def with_logger(logger: Any) -> Option:
    def apply(app: App) -> None:
        app.logger = logger

    return apply


def with_addr(addr: str) -> Option:
    def apply(app: App) -> None:
        app.addr = addr

    return apply


def with_shutdown_timeout(seconds: float) -> Option:
    def apply(app: App) -> None:
        app.shutdown_timeout = seconds

    return apply


def with_views_default_layout(layout: str) -> Option:
    def apply(app: App) -> None:
        _ensure_views(app).set_default_layout(layout)

    return apply


def with_views_dev_mode(dev: bool) -> Option:
    def apply(app: App) -> None:
        _ensure_views(app).set_dev_mode(dev)

    return apply


def with_views_func_map(funcs: dict[str, Callable[..., Any]]) -> Option:
    def apply(app: App) -> None:
        _ensure_views(app).set_func_map(funcs)

    return apply


def with_logging() -> Option:
    """Register request logging with the logger configured so far."""

    def apply(app: App) -> None:
        app.use(logging_middleware(app.logger))

    return apply


def with_request_id(header_name: str = "") -> Option:
    def apply(app: App) -> None:
        app.use(request_id_middleware(header_name))

    return apply


def with_timeout(seconds: float) -> Option:
    def apply(app: App) -> None:
        app.use(timeout_middleware(seconds))

    return apply


def with_metrics() -> Option:
    def apply(app: App) -> None:
        app.use(metrics_middleware())

    return apply


def with_default_middleware() -> Option:
    """Register recovery, request id, logging and metrics middleware."""

    def apply(app: App) -> None:
        app.use(recovery(app.logger))
        app.use(request_id_middleware(""))
        app.use(logging_middleware(app.logger))
        app.use(metrics_middleware())

    return apply


def with_db(db: Any) -> Option:
    def apply(app: App) -> None:
        app.set_db(db)

    return apply