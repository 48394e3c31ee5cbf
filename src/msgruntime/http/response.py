"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses and serializes them for the socket.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 201 Created\r\n                    ← status line          │
    │  Content-Type: application/octet-stream\r\n                         │
    │  Content-Length: 9\r\n                       ← auto-calculated      │
    │  Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n     ← auto-added           │
    │  Server: msgruntime/1.0.0\r\n                ← auto-added           │
    │  \r\n                                        ← separator            │
    │  hi! hello                                   ← body (raw bytes)     │
    └─────────────────────────────────────────────────────────────────────┘

Handler output is opaque, so message responses are always sent as
application/octet-stream. Failure messages are text/plain; charset=utf-8.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.CREATED)
        .body(output)
        .content_type("application/octet-stream")
        .build())

Each method returns ``self`` except build(), which produces the
HTTPResponse.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


OCTET_STREAM = "application/octet-stream"
TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Use ResponseBuilder or the helpers at the bottom of this module rather
    than constructing one field by field.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """E.g. ``HTTP/1.1 204 No Content``."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "msgruntime") -> bytes:
        """
        Serialize to the exact bytes that go on the wire.

        Content-Length, Date and Server are filled in unless already set.
        Statuses that cannot carry a body (204) are sent with neither a
        body nor a Content-Length header.
        """
        response_headers = dict(self.headers)
        body = self.body

        if self.status.allows_body:
            if "Content-Length" not in response_headers:
                response_headers["Content-Length"] = str(len(body))
        else:
            response_headers.pop("Content-Length", None)
            response_headers.pop("Content-Type", None)
            body = b""

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + body


class ResponseBuilder:
    """Fluent builder for HTTPResponse."""

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes, bytearray, memoryview]) -> "ResponseBuilder":
        """
        Set a raw body.

        Strings are encoded as UTF-8; bytes-like objects are copied into an
        immutable ``bytes`` so later mutation by the caller cannot leak into
        the response.
        """
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = bytes(body)
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Always GMT: ``Mon, 19 Oct 2026 12:00:00 GMT``. Day and month names are
    spelled out here instead of strftime so the result does not depend on
    the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================

def created(body: Union[bytes, bytearray, memoryview]) -> HTTPResponse:
    """201 Created carrying handler output verbatim."""
    return (ResponseBuilder()
        .status(HTTPStatus.CREATED)
        .body(body)
        .content_type(OCTET_STREAM)
        .build())


def no_content() -> HTTPResponse:
    """204 No Content, empty body."""
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def internal_error(message: str = "") -> HTTPResponse:
    """500 with ``message`` as the plain-text body (no JSON envelope)."""
    return (ResponseBuilder()
        .status(HTTPStatus.INTERNAL_SERVER_ERROR)
        .text(message)
        .build())


def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """Transport-level error (parse failure, overload) as a JSON body."""
    return ResponseBuilder().status(status).json({"error": message}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def service_unavailable(message: str = "Server overloaded",
                        retry_after: Optional[int] = None) -> HTTPResponse:
    builder = (ResponseBuilder()
        .status(HTTPStatus.SERVICE_UNAVAILABLE)
        .json({"error": message}))
    if retry_after is not None:
        builder.header("Retry-After", str(retry_after))
    return builder.build()
