"""
Unit tests for HTTP response building.
"""

import json
from datetime import datetime, timezone

import pytest

from msgruntime.http.response import (
    HTTPResponse,
    ResponseBuilder,
    created,
    no_content,
    internal_error,
    method_not_allowed,
    not_found,
    service_unavailable,
    format_http_date,
    OCTET_STREAM,
    TEXT_PLAIN,
)
from msgruntime.http.status_codes import HTTPStatus, get_status_phrase


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.CREATED).status_line == "HTTP/1.1 201 Created"
        assert HTTPResponse(status=HTTPStatus.NO_CONTENT).status_line == "HTTP/1.1 204 No Content"

    def test_to_bytes_includes_headers(self):
        response = HTTPResponse(
            status=HTTPStatus.CREATED,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 201 Created\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: msgruntime\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_server_name(self):
        result = HTTPResponse().to_bytes(server_name="msgruntime/1.0.0")

        assert b"Server: msgruntime/1.0.0\r\n" in result

    def test_no_content_has_no_body_or_length(self):
        response = HTTPResponse(
            status=HTTPStatus.NO_CONTENT,
            headers={"Content-Type": OCTET_STREAM},
            body=b"ignored",
        )

        result = response.to_bytes()

        assert result.endswith(b"\r\n\r\n")
        assert b"Content-Length" not in result
        assert b"Content-Type" not in result
        assert b"ignored" not in result

    def test_empty_created_has_zero_length(self):
        result = created(b"").to_bytes()

        assert result.startswith(b"HTTP/1.1 201 Created\r\n")
        assert b"Content-Length: 0\r\n" in result

    def test_set_header_chaining(self):
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        response = ResponseBuilder().status(HTTPStatus.CREATED).build()
        assert response.status == HTTPStatus.CREATED

    def test_bytes_body_is_copied(self):
        buf = bytearray(b"abc")
        response = ResponseBuilder().body(buf).build()
        buf[0] = ord("z")

        assert response.body == b"abc"
        assert isinstance(response.body, bytes)

    def test_memoryview_body(self):
        response = ResponseBuilder().body(memoryview(b"view")).build()
        assert response.body == b"view"

    def test_json_body(self):
        data = {"error": "Not Found"}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_text_body(self):
        response = ResponseBuilder().text("Hello, Wörld").build()

        assert response.headers["Content-Type"] == TEXT_PLAIN
        assert response.body == "Hello, Wörld".encode("utf-8")

    def test_no_cache(self):
        response = ResponseBuilder().no_cache().build()
        assert response.headers["Cache-Control"] == "no-store"


class TestConvenienceFunctions:

    def test_created(self):
        response = created(b"\x00\xffdata")

        assert response.status == HTTPStatus.CREATED
        assert response.body == b"\x00\xffdata"
        assert response.headers["Content-Type"] == OCTET_STREAM

    def test_no_content(self):
        response = no_content()

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.body == b""

    def test_internal_error_is_plain_text(self):
        response = internal_error("boom")

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == b"boom"
        assert response.headers["Content-Type"] == TEXT_PLAIN

    def test_not_found(self):
        response = not_found()

        assert response.status == 404
        assert json.loads(response.body) == {"error": "Not Found"}

    def test_method_not_allowed(self):
        response = method_not_allowed(["POST"])

        assert response.status == 405
        assert response.headers["Allow"] == "POST"

    @pytest.mark.parametrize("retry_after,expected", [(None, None), (5, "5")])
    def test_service_unavailable(self, retry_after, expected):
        response = service_unavailable(retry_after=retry_after)

        assert response.status == 503
        assert response.headers.get("Retry-After") == expected


class TestHelpers:

    def test_format_http_date(self):
        dt = datetime(2026, 10, 19, 12, 0, 5, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Mon, 19 Oct 2026 12:00:05 GMT"

    def test_status_phrase(self):
        assert get_status_phrase(201) == "Created"
        assert get_status_phrase(999) == "Unknown"

    def test_allows_body(self):
        assert HTTPStatus.CREATED.allows_body is True
        assert HTTPStatus.NO_CONTENT.allows_body is False
