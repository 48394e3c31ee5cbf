"""
Unit tests for HTTP request parsing.
"""

import pytest

from msgruntime.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
)


def parse(raw: bytes) -> HTTPRequest:
    return RequestParser().parse_head(raw)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_message_post(self, sample_message_request: bytes):
        request = RequestParser().parse_head(sample_message_request, ("127.0.0.1", 12345))

        assert request.method == "POST"
        assert request.path == "/messages"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.is_keep_alive is False

    def test_parse_head_ignores_body(self, sample_message_request: bytes):
        """parse_head() stops at the blank line; the body is read later."""
        request = parse(sample_message_request)

        assert request.body == b""
        assert request.content_length == 5
        assert request.has_body is True

    def test_parse_headers(self, sample_ready_request: bytes):
        request = parse(sample_ready_request)

        assert request.user_agent == "pytest"
        assert request.headers["host"] == "127.0.0.1:8080"
        assert request.is_keep_alive is True
        assert request.has_body is False

    def test_query_string_is_dropped(self):
        request = parse(b"GET /ready?x=1 HTTP/1.1\r\nHost: test\r\n\r\n")

        assert request.path == "/ready"

    def test_parse_invalid_method(self):
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse(raw)

        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        raw = b"GET / HTTP/2.0\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse(raw)

        assert exc_info.value.status_code == 505

    def test_missing_terminator(self):
        with pytest.raises(HTTPParseError):
            parse(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_parse_missing_headers(self):
        request = parse(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_body_size_is_unbounded_by_default(self):
        raw = b"POST /messages HTTP/1.1\r\nContent-Length: 67108865\r\n\r\n"

        assert parse(raw).content_length == 67108865

    def test_body_too_large(self):
        parser = RequestParser(max_request_size=100)
        raw = b"POST /messages HTTP/1.1\r\nContent-Length: 500\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse_head(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_keep_alive_defaults(self):
        request_10 = parse(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        request_11 = parse(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

    def test_case_insensitive_headers(self):
        request = parse(b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n")

        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"

    def test_repeated_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nX-Tag: a\r\nX-Tag: b\r\n\r\n"

        assert parse(raw).get_header("X-Tag") == "a, b"


class TestFraming:
    """Body framing checks done before any body byte is read."""

    def test_content_length_and_transfer_encoding_rejected(self):
        raw = (
            b"POST /messages HTTP/1.1\r\n"
            b"Content-Length: 3\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
        )

        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse_head(raw)

        assert exc_info.value.status_code == 400

    def test_conflicting_content_length(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 3\r\nContent-Length: 4\r\n\r\n"

        with pytest.raises(HTTPParseError):
            RequestParser().parse_head(raw)

    def test_repeated_identical_content_length_is_accepted(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 3\r\nContent-Length: 3\r\n\r\n"

        assert RequestParser().parse_head(raw).content_length == 3

    @pytest.mark.parametrize("value", [b"-1", b"abc", b"1.5"])
    def test_invalid_content_length(self, value: bytes):
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse_head(raw)

        assert exc_info.value.status_code == 400

    def test_chunked_is_recognized(self):
        raw = b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
        request = RequestParser().parse_head(raw)

        assert request.is_chunked is True
        assert request.has_body is True

    def test_unknown_transfer_encoding(self):
        raw = b"POST / HTTP/1.1\r\nTransfer-Encoding: gzip\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse_head(raw)

        assert exc_info.value.status_code == 411


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_expects_continue(self):
        request = HTTPRequest(method="POST", path="/messages",
                              headers={"expect": "100-Continue"})

        assert request.expects_continue is True

    def test_connection_close_on_http11(self):
        request = HTTPRequest(method="GET", path="/", headers={"connection": "close"})

        assert request.is_keep_alive is False
