"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

    request.py       raw bytes → HTTPRequest (head and body read separately)
    response.py      HTTPResponse / ResponseBuilder → raw bytes
    router.py        (method, path) → handler, with per-route metadata
    status_codes.py  the status codes this server emits

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    created,             # 201 Created
    no_content,          # 204 No Content
    internal_error,      # 500, plain-text message
    error_response,      # transport-level errors
    not_found,           # 404
    method_not_allowed,  # 405
    service_unavailable, # 503
)
from .router import Router, Route
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    "HTTPResponse",
    "ResponseBuilder",
    "created",
    "no_content",
    "internal_error",
    "error_response",
    "not_found",
    "method_not_allowed",
    "service_unavailable",

    "Router",
    "Route",

    "HTTPStatus",
]
