"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The subset of RFC 7231 status codes this server can emit.

The message endpoint speaks in exactly three codes:

    201 Created                 handler returned bytes
    204 No Content              handler returned None (or GET /ready)
    500 Internal Server Error   handler raised

Everything else here is produced by the transport itself: parse errors,
unknown routes, wrong methods, an overloaded worker pool.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.CREATED == 201
        True
        >>> HTTPStatus.NO_CONTENT.phrase
        'No Content'
    """

    OK = 200
    CREATED = 201                       # Handler produced a message
    NO_CONTENT = 204                    # Handler produced nothing / readiness

    BAD_REQUEST = 400                   # Malformed request syntax
    NOT_FOUND = 404                     # Only /ready and /messages exist
    METHOD_NOT_ALLOWED = 405            # Right path, wrong method
    REQUEST_TIMEOUT = 408               # Only with an explicit socket timeout
    LENGTH_REQUIRED = 411               # Body without Content-Length
    PAYLOAD_TOO_LARGE = 413             # Exceeds max_request_size

    INTERNAL_SERVER_ERROR = 500         # Handler failure
    SERVICE_UNAVAILABLE = 503           # Worker pool queue is full
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line (``HTTP/1.1 201 Created``)."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def allows_body(self) -> bool:
        """
        Whether a response with this status may carry a body.

        RFC 7230 section 3.3.3: 1xx, 204 and 304 responses never have one,
        so Content-Length must not be sent for them either.
        """
        return not (self < 200 or self in (204, 304))


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.LENGTH_REQUIRED: "Length Required",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def get_status_phrase(code: int) -> str:
    """Reason phrase for a raw integer code, ``"Unknown"`` if unsupported."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"
