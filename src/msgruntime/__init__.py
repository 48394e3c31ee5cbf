"""
=============================================================================
msgruntime
=============================================================================

HTTP runtime for a single message-processing step.

    import msgruntime

    def handler(message: bytes, context) -> bytes | None:
        return b"processed " + message

    msgruntime.start(handler)     # serves until SIGTERM, then drains

=============================================================================
"""

__version__ = "1.0.0"

from typing import Optional

from .config import ServerConfig
from .handlers import MessageHandler, HandlerLoadError, echo_handler, load_handler
from .server import MessageServer


def start(handler: Optional[MessageHandler] = None,
          config: Optional[ServerConfig] = None) -> None:
    """
    Run a message server in the foreground.

    Blocks until a shutdown signal arrives and every in-flight message has
    been answered.
    """
    MessageServer(handler, config).run()


__all__ = [
    "MessageServer",
    "ServerConfig",
    "MessageHandler",
    "HandlerLoadError",
    "echo_handler",
    "load_handler",
    "start",
    "__version__",
]
