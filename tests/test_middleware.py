import re

from flow.httpio import Request, ResponseWriter, status_text
from flow.middleware import (
    logging_middleware,
    metrics_middleware,
    recovery,
    request_id_middleware,
    timeout_middleware,
)


class RecordingLogger:
    def __init__(self):
        self.messages = []

    def info(self, msg, *args):
        self.messages.append(("info", msg % args))

    def error(self, msg, *args):
        self.messages.append(("error", msg % args))


def test_request_id_generated_for_request_and_response():
    seen = {}

    def handler(writer, request):
        seen["id"] = request.headers.get("X-Request-ID")
        writer.write_header(200)

    writer = ResponseWriter()
    request_id_middleware("")(handler)(writer, Request())
    assert writer.status == 200
    assert seen["id"]
    assert writer.headers.get("X-Request-ID") == seen["id"]


def test_request_id_preserved_when_present():
    writer = ResponseWriter()
    request_id_middleware("")(lambda w, r: None)(
        writer, Request(headers={"X-Request-ID": "abc"})
    )
    assert writer.headers.get("X-Request-ID") == "abc"


def test_request_id_custom_header():
    writer = ResponseWriter()
    request_id_middleware("X-Trace")(lambda w, r: None)(writer, Request())
    assert writer.headers.get("X-Trace")
    assert writer.headers.get("X-Request-ID") is None


def test_timeout_middleware_cancels_handler():
    def handler(writer, request):
        writer.write_header(499 if request.wait_done(0.1) else 200)

    writer = ResponseWriter()
    timeout_middleware(0.02)(handler)(writer, Request())
    assert writer.status == 499


def test_zero_timeout_leaves_request_without_deadline():
    seen = {}

    def handler(writer, request):
        seen["deadline"] = request.deadline
        writer.write_header(499 if request.wait_done(0.02) else 200)

    writer = ResponseWriter()
    timeout_middleware(0)(handler)(writer, Request())
    assert writer.status == 200
    assert seen == {"deadline": None}


def test_metrics_sets_response_time():
    writer = ResponseWriter()
    metrics_middleware()(lambda w, r: w.write("ok"))(writer, Request())
    assert re.fullmatch(r"\d+ms", writer.headers.get("X-Response-Time"))
    assert writer.body == b"ok"


def test_logging_middleware_logs_start_and_completion():
    logger = RecordingLogger()
    logging_middleware(logger)(lambda w, r: None)(
        ResponseWriter(), Request(method="GET", path="/x")
    )
    assert len(logger.messages) == 2
    assert logger.messages[0] == ("info", "request start: GET /x")
    assert logger.messages[1][1].startswith("request complete: GET /x in ")


def test_recovery_turns_exception_into_500():
    logger = RecordingLogger()

    def handler(writer, request):
        raise RuntimeError("boom")

    writer = ResponseWriter()
    recovery(logger)(handler)(writer, Request())
    assert writer.status == 500
    assert writer.body == (status_text(500) + "\n").encode()
    assert logger.messages == [("error", "panic: boom")]


def test_recovery_passes_through_normal_response():
    logger = RecordingLogger()
    writer = ResponseWriter()
    recovery(logger)(lambda w, r: w.write_header(204))(writer, Request())
    assert writer.status == 204
    assert logger.messages == []