"""Request-scoped helper handed to controller actions."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .httpio import Request, ResponseWriter, redirect
from .session import Session, from_request
from .view import ViewError

FLASH_KEY = "_flash"


class _ParamsKey:
    """Request value key under which a router stores path parameters."""


PARAMS_KEY = _ParamsKey()

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


@dataclass(frozen=True)
class FlashEntry:
    """A one-shot message kept in the session."""

    kind: str = ""
    msg: str = ""


def _flash_item(item: Mapping[str, Any]) -> dict[str, str]:
    return {key: item[key] for key in ("kind", "msg") if isinstance(item.get(key), str)}


def _stored_flashes(session: Session) -> list[dict[str, str]]:
    stored = session.get(FLASH_KEY)
    if not isinstance(stored, list):
        return []
    return [_flash_item(item) for item in stored if isinstance(item, Mapping)]


@dataclass
class Context:
    """Wraps the response writer and request of one request."""

    app: Any
    writer: ResponseWriter
    request: Request
    _status: int = field(default=0, init=False, repr=False)

    def params(self) -> dict[str, str]:
        """Path parameters injected by the router; never None."""
        found = self.request.values.get(PARAMS_KEY)
        return dict(found) if isinstance(found, Mapping) else {}

    def param(self, name: str) -> str:
        return self.params().get(name, "")

    def set_header(self, key: str, value: str) -> None:
        self.writer.headers[key] = value

    def status(self, code: int) -> None:
        """Write the status code; the first write wins."""
        self._status = code
        self.writer.write_header(code)

    def json(self, status: int, value: Any) -> None:
        """Write value as a JSON response; a zero status means 200."""
        self.set_header("Content-Type", "application/json; charset=utf-8")
        self.status(status or 200)
        try:
            text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"render json: {exc}") from exc
        self.writer.write(text.translate(_JSON_ESCAPES) + "\n")

    def render_template(self, template: Any, name: str, data: Any) -> None:
        """Execute the named definition of a parsed template set."""
        if template is None:
            raise ValueError("render template: template is nil")
        self.set_header("Content-Type", "text/html; charset=utf-8")
        if self._status == 0:
            self.status(200)
        try:
            output = template.execute(name, data)
        except Exception as exc:
            raise ViewError(f"render template: {exc}") from exc
        self.writer.write(output)

    def redirect(self, url: str, code: int = 0) -> None:
        """Redirect the client; a zero code means 302 Found."""
        redirect(self.writer, self.request, url, code or 302)

    def bind_json(self) -> Any:
        """Decode the first JSON value in the request body."""
        try:
            text = self.request.body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"bind json: {exc}") from exc
        stripped = text.lstrip()
        if not stripped:
            raise ValueError("bind json: EOF")
        try:
            value, _ = json.JSONDecoder().raw_decode(stripped)
        except json.JSONDecodeError as exc:
            raise ValueError(f"bind json: {exc}") from exc
        return value

    def form_value(self, key: str) -> str:
        return self.request.form_value(key)

    def render(self, name: str, data: Any = None) -> None:
        """Render a view through the application's view manager."""
        views = getattr(self.app, "views", None)
        if views is None:
            raise ViewError("render: views not configured")
        views.render(name, data, self)

    def session(self) -> Session | None:
        return from_request(self.request)

    def _require_session(self) -> Session:
        session = self.session()
        if session is None:
            raise RuntimeError("flash: session not configured")
        return session

    def add_flash(self, kind: str, msg: str) -> None:
        """Append a flash message to the session."""
        session = self._require_session()
        entries = _stored_flashes(session)
        entries.append({"kind": kind, "msg": msg})
        session.set(FLASH_KEY, entries)

    def flashes(self) -> list[FlashEntry]:
        """Return and clear the session's flash messages."""
        session = self._require_session()
        entries = [FlashEntry(item.get("kind", ""), item.get("msg", "")) for item in _stored_flashes(session)]
        session.delete(FLASH_KEY)
        return entries

    def error(self, status: int, msg: str) -> None:
        """Write a plain-text error; a zero status means 500."""
        self.set_header("Content-Type", "text/plain; charset=utf-8")
        self.status(status or 500)
        self.writer.write(msg)