"""Signed-cookie sessions."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from .httpio import Cookie, Handler, Middleware, Request, ResponseWriter

DEFAULT_COOKIE_NAME = "flow_session"
DEFAULT_MAX_AGE = 86400

_B64_RE = re.compile(r"[A-Za-z0-9_-]*")
_HEX_RE = re.compile(r"(?:[0-9a-fA-F]{2})*")
_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


class _SessionKey:
    """Request value key under which the session is stored."""


_SESSION_KEY = _SessionKey()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    if not _B64_RE.fullmatch(text) or len(text) % 4 == 1:
        raise ValueError("invalid base64 payload")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _encode_json(values: dict[str, Any]) -> bytes:
    text = json.dumps(
        values, separators=(",", ":"), sort_keys=True, ensure_ascii=False, allow_nan=False
    )
    return text.translate(_JSON_ESCAPES).encode("utf-8")


@dataclass
class SessionManager:
    """Encodes sessions into, and decodes them from, an HMAC-signed cookie."""

    secret: bytes
    cookie_name: str = DEFAULT_COOKIE_NAME
    max_age: int = DEFAULT_MAX_AGE

    def __post_init__(self) -> None:
        if not self.cookie_name:
            self.cookie_name = DEFAULT_COOKIE_NAME

    def _sign(self, data: bytes) -> bytes:
        return hmac.new(self.secret, data, hashlib.sha256).digest()

    def load_from_request(self, request: Request) -> dict[str, Any]:
        """Decode the session cookie; an absent or invalid cookie yields an empty dict."""
        cookie = request.cookie(self.cookie_name)
        if cookie is None:
            return {}
        parts = cookie.value.split("|")
        if len(parts) != 2:
            return {}
        payload, signature = parts
        if not _HEX_RE.fullmatch(signature):
            return {}
        try:
            data = _b64decode(payload)
        except (ValueError, binascii.Error):
            return {}
        if not hmac.compare_digest(bytes.fromhex(signature), self._sign(data)):
            return {}
        try:
            values = json.loads(data)
        except ValueError:
            return {}
        return values if isinstance(values, dict) else {}

    def encode_for_cookie(self, values: dict[str, Any]) -> str:
        """Serialize values to JSON and sign them as `payload|hexsignature`."""
        data = _encode_json(values)
        return f"{_b64encode(data)}|{self._sign(data).hex()}"

    def middleware(self) -> Middleware:
        """Middleware that attaches a Session to every request."""

        def wrap(next_handler: Handler) -> Handler:
            def handle(writer: ResponseWriter, request: Request) -> None:
                session = Session(self.load_from_request(request), self, writer, request)
                next_handler(writer, request.with_value(_SESSION_KEY, session))

            return handle

        return wrap


class Session:
    """Request-scoped session data; every change is written back as a cookie."""

    def __init__(
        self,
        values: dict[str, Any],
        manager: SessionManager,
        writer: ResponseWriter,
        request: Request,
    ) -> None:
        self._values = values
        self.manager = manager
        self.writer = writer
        self.request = request

    def get(self, key: str) -> Any:
        """Return the stored value, or None if the key is absent."""
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self.save()

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self.save()

    def save(self) -> None:
        """Encode the session and set it as a cookie on the response."""
        encoded = self.manager.encode_for_cookie(self._values)
        max_age = self.manager.max_age
        self.writer.set_cookie(
            Cookie(
                name=self.manager.cookie_name,
                value=encoded,
                path="/",
                http_only=True,
                secure=False,
                expires=datetime.now(timezone.utc) + timedelta(seconds=max_age),
                max_age=max_age,
            )
        )


def from_request(request: Request) -> Session | None:
    """Return the session attached to the request, or None."""
    value = request.values.get(_SESSION_KEY)
    return value if isinstance(value, Session) else None


def default_session_manager() -> SessionManager:
    """A manager with a fresh random secret, suitable for development."""
    return SessionManager(secrets.token_bytes(32), DEFAULT_COOKIE_NAME)