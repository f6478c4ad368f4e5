from types import SimpleNamespace

import pytest

from flow.context import PARAMS_KEY
from flow.controller import Controller, Resource
from flow.httpio import Request, ResponseWriter
from flow.view import ViewError, ViewManager


class UsersController(Controller):
    def index(self, ctx):
        ctx.writer.write_header(200)

    def new(self, ctx):
        ctx.writer.write_header(200)

    def create(self, ctx):
        ctx.writer.write_header(200)

    def show(self, ctx):
        ctx.writer.write(ctx.param("id"))

    def edit(self, ctx):
        ctx.writer.write_header(200)

    def update(self, ctx):
        ctx.writer.write_header(200)

    def destroy(self, ctx):
        ctx.writer.write_header(200)


def test_with_context_binds_app_and_request():
    app = SimpleNamespace(views=None)
    writer, request = ResponseWriter(), Request(path="/x")
    ctx = Controller(app).with_context(writer, request)
    assert ctx.app is app
    assert ctx.writer is writer
    assert ctx.request is request


def test_handler_passes_context_to_action():
    app = SimpleNamespace(views=None)
    seen = []

    def action(ctx):
        seen.append(ctx.app)
        ctx.writer.write("world")

    writer = ResponseWriter()
    Controller(app).handler(action)(writer, Request(path="/hello"))
    assert writer.body == b"world"
    assert seen == [app]


def test_resource_controller_show_echoes_param():
    users = UsersController(SimpleNamespace(views=None))
    assert isinstance(users, Resource)
    writer = ResponseWriter()
    request = Request(path="/users/42").with_value(PARAMS_KEY, {"id": "42"})
    users.handler(users.show)(writer, request)
    assert writer.body == b"42"
    assert writer.status == 200


def test_plain_controller_is_not_a_resource():
    results = [isinstance(c, Resource) for c in (Controller(), UsersController())]
    assert results == [False, True]


def test_render_without_views_raises():
    controller = Controller(None)
    ctx = controller.with_context(ResponseWriter(), Request())
    with pytest.raises(ViewError, match="view manager not configured"):
        controller.render(ctx, "users/show", None)


def test_render_uses_app_views(tmp_path):
    view = tmp_path / "users" / "show.html"
    view.parent.mkdir(parents=True)
    view.write_text("{% block content %}user {{ data }}{% endblock %}", encoding="utf-8")
    controller = Controller(SimpleNamespace(views=ViewManager(str(tmp_path))))
    writer = ResponseWriter()
    ctx = controller.with_context(writer, Request())
    controller.render(ctx, "users/show", "ann")
    assert writer.body == b"user ann"