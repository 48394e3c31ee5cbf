"""
Unit tests for the middleware pipeline and access logging.
"""

import json
import logging

from msgruntime.http.request import HTTPRequest
from msgruntime.http.response import HTTPResponse, ResponseBuilder, HTTPStatus
from msgruntime.middleware import LoggingMiddleware, Middleware, MiddlewarePipeline


def handler(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.CREATED).body(b"out").build()


class Recorder(Middleware):
    def __init__(self, name: str, calls: list):
        self.label = name
        self.calls = calls

    def __call__(self, request, next):
        self.calls.append(f"{self.label}:before")
        response = next(request)
        self.calls.append(f"{self.label}:after")
        return response


def make_request(path: str = "/messages", **headers) -> HTTPRequest:
    return HTTPRequest(method="POST", path=path, headers=headers, body=b"in",
                       client_address=("127.0.0.1", 5000))


class TestMiddlewarePipeline:

    def test_first_added_is_outermost(self):
        calls = []
        pipeline = MiddlewarePipeline().add(Recorder("a", calls)).add(Recorder("b", calls))

        pipeline.wrap(handler)(make_request())

        assert calls == ["a:before", "b:before", "b:after", "a:after"]
        assert len(pipeline) == 2

    def test_empty_pipeline_is_the_handler(self):
        assert MiddlewarePipeline().wrap(handler) is handler


class TestLoggingMiddleware:

    def test_text_line(self, caplog):
        wrapped = MiddlewarePipeline().add(LoggingMiddleware()).wrap(handler)

        with caplog.at_level(logging.INFO, logger="msgruntime.access"):
            response = wrapped(make_request())

        assert response.headers["X-Request-ID"]
        line = caplog.records[-1].getMessage()
        assert '"POST /messages" 201 2 3' in line
        assert line.startswith("127.0.0.1 - - [")

    def test_json_line(self, caplog):
        wrapped = MiddlewarePipeline().add(LoggingMiddleware(log_format="json")).wrap(handler)

        with caplog.at_level(logging.INFO, logger="msgruntime.access"):
            wrapped(make_request(**{"x-request-id": "abc123"}))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["request_id"] == "abc123"
        assert entry["status_code"] == 201
        assert entry["request_bytes"] == 2
        assert entry["response_bytes"] == 3

    def test_ready_is_skipped(self, caplog):
        wrapped = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="msgruntime.access"):
            response = wrapped(make_request("/ready"), handler)

        assert not [r for r in caplog.records if r.name == "msgruntime.access"]
        assert "X-Request-ID" in response.headers
