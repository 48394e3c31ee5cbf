"""
=============================================================================
MESSAGE ENDPOINT
=============================================================================

Adapts a MessageHandler to the router's ``request -> response`` shape.

    POST /messages
        │
        ▼
    MessageEndpoint.handle(request)
        │   handler(request.body, empty_context())
        ├── bytes-like  → 201 application/octet-stream
        ├── None        → 204
        ├── Exception   → 500 text/plain failure_message(exc)
        └── other type  → 500 text/plain "... returned int ..."

Only ``Exception`` is caught. KeyboardInterrupt and SystemExit raised by a
handler propagate to the worker.

=============================================================================
"""

import logging
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, created, no_content, internal_error
from .base import MessageHandler, empty_context, failure_message
from .echo import echo_handler


logger = logging.getLogger(__name__)

BYTES_LIKE = (bytes, bytearray, memoryview)


class MessageEndpoint:
    """Route handler for ``POST /messages``."""

    def __init__(self, handler: Optional[MessageHandler] = None):
        self.handler = handler or echo_handler

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__qualname__", type(self.handler).__name__)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        try:
            output = self.handler(request.body, empty_context())
        except Exception as e:
            logger.exception(f"Handler {self.handler_name} failed: {e}")
            return internal_error(failure_message(e))

        if output is None:
            return no_content()

        if isinstance(output, BYTES_LIKE):
            return created(output)

        message = (
            f"Handler {self.handler_name} returned {type(output).__name__}, "
            f"expected bytes or None"
        )
        logger.error(message)
        return internal_error(message)
