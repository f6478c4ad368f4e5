"""HTTP request and response primitives and a WSGI bridge."""

from __future__ import annotations

import dataclasses
import io
import posixpath
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from http import HTTPStatus
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import parse_qs, urlsplit
from wsgiref.headers import Headers

Handler = Callable[["ResponseWriter", "Request"], None]
Middleware = Callable[[Handler], Handler]

_FORM_METHODS = frozenset({"POST", "PUT", "PATCH"})
_HTML_ESCAPES = str.maketrans(
    {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&#34;", "'": "&#39;"}
)


@dataclass
class Cookie:
    """An HTTP cookie, rendered as a Set-Cookie value by str()."""

    name: str
    value: str
    path: str = ""
    domain: str = ""
    expires: datetime | None = None
    max_age: int = 0
    http_only: bool = False
    secure: bool = False

    def __str__(self) -> str:
        parts = [f"{self.name}={self.value}"]
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.expires is not None:
            when = self.expires.astimezone(timezone.utc)
            parts.append(f"Expires={format_datetime(when, usegmt=True)}")
        if self.max_age > 0:
            parts.append(f"Max-Age={self.max_age}")
        elif self.max_age < 0:
            parts.append("Max-Age=0")
        if self.http_only:
            parts.append("HttpOnly")
        if self.secure:
            parts.append("Secure")
        return "; ".join(parts)


def _decode_wsgi_text(text: str) -> str:
    return text.encode("latin-1", "replace").decode("utf-8", "replace")


@dataclass
class Request:
    """An incoming HTTP request with request-scoped values and an optional deadline."""

    method: str = "GET"
    path: str = "/"
    query: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    values: Mapping[Any, Any] = field(default_factory=dict)
    deadline: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(
                [(str(key), str(value)) for key, value in dict(self.headers).items()]
            )

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> "Request":
        """Build a request from a WSGI environ."""
        headers = Headers()
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                headers[key[5:].replace("_", "-").title()] = value
        if environ.get("CONTENT_TYPE"):
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        if environ.get("CONTENT_LENGTH"):
            headers["Content-Length"] = environ["CONTENT_LENGTH"]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        stream = environ.get("wsgi.input")
        body = stream.read(length) if stream is not None and length > 0 else b""
        return cls(
            method=str(environ.get("REQUEST_METHOD", "GET")).upper(),
            path=_decode_wsgi_text(environ.get("PATH_INFO") or "/"),
            query=environ.get("QUERY_STRING", ""),
            headers=headers,
            body=body,
        )

    def cookie(self, name: str) -> Cookie | None:
        """Return the named cookie sent with the request, or None."""
        for header in self.headers.get_all("Cookie"):
            for part in header.split(";"):
                key, sep, value = part.strip().partition("=")
                if sep and key == name:
                    if len(value) > 1 and value[0] == value[-1] == '"':
                        value = value[1:-1]
                    return Cookie(name=key, value=value)
        return None

    def _media_type(self) -> str:
        return (self.headers.get("Content-Type") or "").split(";")[0].strip().lower()

    def _form(self) -> dict[str, list[str]]:
        sources = []
        if self.method in _FORM_METHODS and self._media_type() == "application/x-www-form-urlencoded":
            sources.append(self.body.decode("utf-8", "replace"))
        sources.append(self.query)
        merged: dict[str, list[str]] = {}
        for source in sources:
            for key, values in parse_qs(source, keep_blank_values=True).items():
                merged.setdefault(key, []).extend(values)
        return merged

    def form_value(self, key: str) -> str:
        """Return the first form value for key; body values win over the query."""
        values = self._form().get(key)
        return values[0] if values else ""

    def with_value(self, key: Any, value: Any) -> "Request":
        """Return a copy of the request carrying an extra request-scoped value."""
        return dataclasses.replace(self, values={**self.values, key: value})

    def with_timeout(self, seconds: float) -> "Request":
        """Return a copy whose deadline is at most `seconds` from now."""
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return dataclasses.replace(self, deadline=deadline)

    def done(self) -> bool:
        """Whether the request's deadline has passed."""
        return self.deadline is not None and time.monotonic() >= self.deadline

    def wait_done(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for the deadline; return whether it passed."""
        if self.deadline is None:
            time.sleep(max(0.0, timeout))
            return False
        remaining = self.deadline - time.monotonic()
        time.sleep(max(0.0, min(timeout, remaining)))
        return self.done()


class ResponseWriter:
    """Collects the status, headers and body of a response."""

    def __init__(self) -> None:
        self.headers = Headers()
        self.status = int(HTTPStatus.OK)
        self.wrote_header = False
        self._body = io.BytesIO()

    @property
    def body(self) -> bytes:
        return self._body.getvalue()

    def write_header(self, code: int) -> None:
        """Set the status code; only the first call has any effect."""
        if not 100 <= code <= 999:
            raise ValueError(f"invalid WriteHeader code {code}")
        if self.wrote_header:
            return
        self.status = code
        self.wrote_header = True

    def write(self, data: bytes | str) -> int:
        """Append data to the body, sending a 200 status first if none was set."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not self.wrote_header:
            self.write_header(int(HTTPStatus.OK))
        return self._body.write(data)

    def set_cookie(self, cookie: Cookie) -> None:
        self.headers.add_header("Set-Cookie", str(cookie))


def status_text(code: int) -> str:
    """Return the standard reason phrase for code, or an empty string."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


def error(writer: ResponseWriter, message: str, status: int) -> None:
    """Reply with a plain-text error message and the given status."""
    del writer.headers["Content-Length"]
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    writer.write_header(status)
    writer.write(message + "\n")


def _clean_path(path: str) -> str:
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _escape_non_ascii(text: str) -> str:
    return "".join(
        ch if ord(ch) < 0x80 else "".join(f"%{byte:02x}" for byte in ch.encode("utf-8"))
        for ch in text
    )


def redirect(writer: ResponseWriter, request: Request, url: str, code: int) -> None:
    """Reply with a redirect to url, resolving relative paths against the request."""
    try:
        parts = urlsplit(url)
    except ValueError:
        parts = None
    if parts is not None and not parts.scheme and not parts.netloc:
        old_path = request.path or "/"
        if not url.startswith("/"):
            url = old_path[: old_path.rfind("/") + 1] + url
        url, mark, query = url.partition("?")
        trailing = url.endswith("/")
        url = _clean_path(url)
        if trailing and not url.endswith("/"):
            url += "/"
        url += mark + query

    had_content_type = writer.headers.get("Content-Type") is not None
    writer.headers["Location"] = _escape_non_ascii(url)
    if not had_content_type and request.method in ("GET", "HEAD"):
        writer.headers["Content-Type"] = "text/html; charset=utf-8"
    writer.write_header(code)
    if not had_content_type and request.method == "GET":
        body = f'<a href="{url.translate(_HTML_ESCAPES)}">{status_text(code)}</a>.\n'
        writer.write(body + "\n")


def wsgi_app(handler: Handler) -> Callable[[Mapping[str, Any], Callable[..., Any]], Iterable[bytes]]:
    """Wrap a handler as a WSGI application."""

    def application(environ: Mapping[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request.from_environ(environ)
        writer = ResponseWriter()
        handler(writer, request)
        body = writer.body
        if writer.headers.get("Content-Length") is None:
            writer.headers["Content-Length"] = str(len(body))
        reason = status_text(writer.status) or "Unknown"
        start_response(f"{writer.status} {reason}", writer.headers.items())
        return [] if request.method == "HEAD" else [body]

    return application