import io
import time
from wsgiref.util import setup_testing_defaults

import pytest

from flow.httpio import (
    Cookie,
    Request,
    ResponseWriter,
    error,
    redirect,
    status_text,
    wsgi_app,
)


def _environ(**overrides):
    environ = dict(overrides)
    setup_testing_defaults(environ)
    return environ


def test_from_environ_reads_method_path_headers_and_body():
    payload = b"name=alice"
    environ = _environ(
        REQUEST_METHOD="post",
        PATH_INFO="/users",
        QUERY_STRING="page=2",
        CONTENT_TYPE="application/x-www-form-urlencoded",
        CONTENT_LENGTH=str(len(payload)),
        HTTP_X_REQUEST_ID="abc",
        **{"wsgi.input": io.BytesIO(payload)},
    )
    request = Request.from_environ(environ)
    assert request.method == "POST"
    assert request.path == "/users"
    assert request.query == "page=2"
    assert request.body == payload
    assert request.headers.get("x-request-id") == "abc"
    assert request.form_value("name") == "alice"
    assert request.form_value("page") == "2"


def test_cookie_parsing_and_missing_cookie():
    request = Request(headers={"Cookie": "a=1; flow_session=xyz|00"})
    found = request.cookie("flow_session")
    assert found.name == "flow_session"
    assert found.value == "xyz|00"
    assert request.cookie("absent") is None


def test_form_value_prefers_body_over_query():
    request = Request(
        method="POST",
        query="k=from-query&q=only",
        headers={"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"},
        body=b"k=from-body",
    )
    assert request.form_value("k") == "from-body"
    assert request.form_value("q") == "only"
    assert request.form_value("missing") == ""


def test_form_value_ignores_body_for_get():
    request = Request(
        method="GET",
        query="k=q",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body=b"k=b",
    )
    assert request.form_value("k") == "q"


def test_with_value_leaves_original_untouched():
    original = Request()
    derived = original.with_value("key", 42)
    assert derived.values["key"] == 42
    assert "key" not in original.values


def test_with_timeout_expires_and_keeps_earliest_deadline():
    request = Request()
    assert request.done() is False
    short = request.with_timeout(0.01)
    assert short.wait_done(1.0) is True
    outer = request.with_timeout(10)
    inner = outer.with_timeout(100)
    assert inner.deadline == outer.deadline
    tighter = outer.with_timeout(0.001)
    assert tighter.deadline < outer.deadline


def test_wait_done_without_deadline_returns_false():
    start = time.monotonic()
    assert Request().wait_done(0.01) is False
    assert time.monotonic() - start >= 0.0


def test_write_header_first_call_wins_and_write_defaults():
    writer = ResponseWriter()
    writer.write_header(201)
    writer.write_header(500)
    assert writer.status == 201

    implicit = ResponseWriter()
    assert implicit.write("hello") == 5
    assert implicit.status == 200
    assert implicit.body == b"hello"


def test_write_header_rejects_invalid_code():
    with pytest.raises(ValueError):
        ResponseWriter().write_header(42)


def test_set_cookie_renders_attributes():
    writer = ResponseWriter()
    writer.set_cookie(Cookie("flow_session", "v", path="/", max_age=10, http_only=True))
    header = writer.headers.get("Set-Cookie")
    assert header.startswith("flow_session=v; ")
    assert "Path=/" in header.split("; ")
    assert "Max-Age=10" in header.split("; ")
    assert header.endswith("HttpOnly")


def test_cookie_negative_max_age_expires_immediately():
    assert "Max-Age=0" in str(Cookie("a", "b", max_age=-1)).split("; ")


def test_status_text():
    assert status_text(404) == "Not Found"
    assert status_text(999) == ""


def test_error_writes_plain_text():
    writer = ResponseWriter()
    writer.headers["Content-Length"] = "99"
    error(writer, "broken", 503)
    assert writer.status == 503
    assert writer.body == b"broken\n"
    assert writer.headers.get("Content-Type") == "text/plain; charset=utf-8"
    assert writer.headers.get("Content-Length") is None


def test_redirect_relative_path_is_resolved():
    writer = ResponseWriter()
    redirect(writer, Request(path="/a/b"), "c", 302)
    assert writer.status == 302
    assert writer.headers.get("Location") == "/a/c"
    assert writer.headers.get("Content-Type") == "text/html; charset=utf-8"
    assert status_text(302).encode() in writer.body


def test_redirect_absolute_url_kept_and_no_body_for_post():
    writer = ResponseWriter()
    redirect(writer, Request(method="POST", path="/x"), "http://example.com/next", 303)
    assert writer.headers.get("Location") == "http://example.com/next"
    assert writer.body == b""
    assert writer.status == 303


def test_wsgi_app_round_trip():
    def handler(writer, request):
        writer.headers["Content-Type"] = "text/plain; charset=utf-8"
        writer.write_header(201)
        writer.write(request.path)

    captured = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = dict(headers)

    app = wsgi_app(handler)
    body = b"".join(app(_environ(PATH_INFO="/items"), start_response))
    assert body == b"/items"
    assert captured["status"] == f"201 {status_text(201)}"
    assert captured["headers"]["Content-Length"] == str(len(body))