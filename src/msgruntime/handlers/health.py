"""
=============================================================================
READINESS HANDLER
=============================================================================

``GET /ready`` answers 204 as soon as the listener is accepting and keeps
answering 204 while the server drains. It never touches the in-flight
tracker and has no side effects.

The sidecar polls this endpoint before it forwards its first message, so
"ready" here means "the listener is up", nothing more.

=============================================================================
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


def readiness(request: HTTPRequest) -> HTTPResponse:
    """Readiness probe: 204, never cached."""
    return (ResponseBuilder()
        .status(HTTPStatus.NO_CONTENT)
        .no_cache()
        .build())
