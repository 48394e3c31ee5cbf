"""Reference message handler."""

import logging
from typing import Optional

from .base import Context


logger = logging.getLogger(__name__)


def echo_handler(message: bytes, context: Context) -> Optional[bytes]:
    """
    Reply ``"hi! " + message``.

    The message is decoded as UTF-8 (invalid sequences become U+FFFD) and
    the reply is encoded back to UTF-8. Never fails.
    """
    text = bytes(message).decode("utf-8", errors="replace")
    logger.info(f"Echo handler received {len(message)} bytes")
    return ("hi! " + text).encode("utf-8")
