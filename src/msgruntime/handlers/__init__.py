"""
=============================================================================
HANDLERS MODULE
=============================================================================

    base.py      MessageHandler contract, failure_message(), load_handler()
    echo.py      echo_handler, the reference handler ("hi! " + message)
    messages.py  MessageEndpoint: handler result → 201 / 204 / 500
    health.py    readiness(): GET /ready → 204

=============================================================================
"""

from .base import (
    Context,
    MessageHandler,
    HandlerLoadError,
    empty_context,
    failure_message,
    load_handler,
)
from .echo import echo_handler
from .health import readiness
from .messages import MessageEndpoint

__all__ = [
    "Context",
    "MessageHandler",
    "HandlerLoadError",
    "empty_context",
    "failure_message",
    "load_handler",
    "echo_handler",
    "readiness",
    "MessageEndpoint",
]
