"""Base controller and the resource interface for RESTful controllers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from .context import Context
from .httpio import Handler, Request, ResponseWriter
from .view import ViewError


@dataclass
class Controller:
    """Base for application controllers; holds the application they serve."""

    app: Any = None

    def with_context(self, writer: ResponseWriter, request: Request) -> Context:
        return Context(self.app, writer, request)

    def handler(self, action: Callable[[Context], None]) -> Handler:
        """Adapt an action taking a Context into a plain handler."""

        def handle(writer: ResponseWriter, request: Request) -> None:
            action(Context(self.app, writer, request))

        return handle

    def render(self, ctx: Context, name: str, data: Any = None) -> None:
        """Render a view such as "users/show" through the application's views."""
        views = getattr(self.app, "views", None)
        if views is None:
            raise ViewError("controller: view manager not configured")
        views.render(name, data, ctx)


@runtime_checkable
class Resource(Protocol):
    """Actions of a RESTful resource controller."""

    def index(self, ctx: Context) -> None: ...

    def new(self, ctx: Context) -> None: ...

    def create(self, ctx: Context) -> None: ...

    def show(self, ctx: Context) -> None: ...

    def edit(self, ctx: Context) -> None: ...

    def update(self, ctx: Context) -> None: ...

    def destroy(self, ctx: Context) -> None: ...