"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of an HTTP/1.x request head into an HTTPRequest.

=============================================================================
HEAD FIRST, BODY LATER
=============================================================================

The message endpoint has a strict ordering requirement: a request must be
registered as "in flight" BEFORE its body is read. So parsing is split in
two phases:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Connection.read_head()    RequestParser.parse_head()               │
    │   ──────────────────────►   ─────────────────────────►  HTTPRequest  │
    │   b"POST /messages ..."     method, path, headers       body=b""     │
    │                                                                      │
    │            ... route matched, request registered in flight ...       │
    │                                                                      │
    │   Connection.read_body(request)                                      │
    │   ──────────────────────►   request.body = b"<message bytes>"        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BODY FRAMING
=============================================================================

Two framings are understood:

    Content-Length: N           exactly N bytes follow the head
    Transfer-Encoding: chunked  size-prefixed chunks, terminated by size 0

A request carrying both is rejected (request smuggling). A negative or
non-numeric Content-Length is rejected with 400.

Bodies are unbounded unless ``max_request_size`` is set, in which case a
larger declared or received body is rejected with 413.

The body is NEVER decoded here. Messages are opaque byte sequences.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when an HTTP request cannot be parsed.

    Carries the status code the client should receive:

        400 Bad Request                 malformed syntax, bad framing
        405 Method Not Allowed          unknown method token
        413 Payload Too Large           over max_request_size (when set)
        505 HTTP Version Not Supported  anything but HTTP/1.0 and HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lowercase (RFC 7230: header names are
    case-insensitive). ``body`` stays empty until the connection reads it.

    Attributes:
        method:         GET, POST, ...
        path:           Path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Lowercased name -> value.
        body:           Raw body bytes (opaque).
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    @property
    def content_length(self) -> int:
        """
        Declared body length, 0 when absent.

        The parser has already rejected malformed values, so this never
        raises for requests that came through RequestParser.
        """
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def is_chunked(self) -> bool:
        """True if the body uses chunked transfer coding."""
        encoding = self.headers.get("transfer-encoding", "").lower()
        return encoding.split(",")[-1].strip() == "chunked"

    @property
    def has_body(self) -> bool:
        return self.is_chunked or self.content_length > 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def expects_continue(self) -> bool:
        """Client sent ``Expect: 100-continue`` and waits before the body."""
        return self.headers.get("expect", "").lower() == "100-continue"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after the response.

        HTTP/1.1 defaults to keep-alive unless "Connection: close";
        HTTP/1.0 defaults to close unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Steps for parse_head():

        1. Find the \\r\\n\\r\\n terminator → 400 if missing
        2. Request line                 → 400 / 405 / 505
        3. Headers (lowercased)
        4. Framing validation           → 400 on conflicting/invalid length,
                                          413 over max_request_size
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: Optional[int] = None):
        self.max_request_size = max_request_size

    def parse_head(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse a request head (request line + headers).

        Anything after the header terminator is ignored; the body is read
        separately by the connection.

        Raises:
            HTTPParseError: If the head is malformed.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header section is ASCII per RFC 7230; be lenient with stray bytes
        header_section = data[:header_end].decode("latin-1")

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])
        self._validate_framing(headers)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str]:
        """
        Parse ``METHOD SP REQUEST-URI SP HTTP-VERSION``.

        Returns:
            (method, path, version); the query string is dropped.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"

        return method, path, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", " (RFC 7230 section 3.2.2).
        Obsolete line folding (leading whitespace) continues the previous
        header. Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    def _validate_framing(self, headers: Dict[str, str]) -> None:
        """Reject ambiguous or invalid body framing before any body is read."""
        has_length = "content-length" in headers
        has_encoding = "transfer-encoding" in headers

        if has_length and has_encoding:
            raise HTTPParseError("Both Content-Length and Transfer-Encoding present")

        if has_length:
            raw = headers["content-length"]
            # Repeated identical Content-Length headers were joined with ", "
            values = {v.strip() for v in raw.split(",")}
            if len(values) != 1:
                raise HTTPParseError(f"Conflicting Content-Length: {raw}")
            value = values.pop()
            if not value.isdigit():
                raise HTTPParseError(f"Invalid Content-Length: {raw}")
            length = int(value)
            if self.max_request_size is not None and length > self.max_request_size:
                raise HTTPParseError(
                    f"Request body too large: {length} bytes",
                    status_code=413
                )
            headers["content-length"] = str(length)

        if has_encoding:
            codings = [c.strip().lower() for c in headers["transfer-encoding"].split(",")]
            if codings[-1] != "chunked":
                raise HTTPParseError(
                    f"Unsupported Transfer-Encoding: {headers['transfer-encoding']}",
                    status_code=411
                )

