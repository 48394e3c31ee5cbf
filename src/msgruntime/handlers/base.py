"""
=============================================================================
THE HANDLER CONTRACT
=============================================================================

A message handler is any callable

    handler(message: bytes, context: Mapping[str, str]) -> Optional[bytes]

    ┌──────────────────────────┬──────────────────────────────────────────┐
    │ Handler outcome          │ HTTP response                            │
    ├──────────────────────────┼──────────────────────────────────────────┤
    │ returns bytes (even b"") │ 201 Created, body = the bytes            │
    │ returns None             │ 204 No Content, empty body               │
    │ raises Exception         │ 500, body = failure_message(exc)         │
    │ returns anything else    │ 500, body names the returned type        │
    └──────────────────────────┴──────────────────────────────────────────┘

The context is always empty today. It is part of the signature so that
metadata can be added later without breaking handlers.

Handlers are called concurrently from several worker threads and must be
safe for that.

=============================================================================
LOADING A HANDLER BY NAME
=============================================================================

    load_handler("myapp.handlers:process")     # module attribute
    load_handler("myapp.handlers:Service.run") # nested attribute

=============================================================================
"""

import importlib
import logging
from types import MappingProxyType
from typing import Callable, Mapping, Optional


logger = logging.getLogger(__name__)


Context = Mapping[str, str]
MessageHandler = Callable[[bytes, Context], Optional[bytes]]

_EMPTY_CONTEXT: Context = MappingProxyType({})


class HandlerLoadError(ValueError):
    """A handler import path could not be resolved to a callable."""


def empty_context() -> Context:
    """The read-only, empty context passed with every message."""
    return _EMPTY_CONTEXT


def failure_message(exc: BaseException) -> str:
    """
    Text sent as the body of a 500.

    ``str(exc)``, or the exception class name when that is empty. Never
    raises, even for exceptions whose __str__ is broken.
    """
    try:
        message = str(exc)
    except Exception:
        message = ""
    return message or type(exc).__name__


def load_handler(path: str) -> MessageHandler:
    """
    Resolve ``"package.module:attribute"`` to a handler callable.

    Raises:
        HandlerLoadError: Malformed import path, import failure, missing attribute
                          or a non-callable target.
    """
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise HandlerLoadError(
            f"Invalid handler {path!r}, expected 'package.module:attribute'"
        )

    try:
        target = importlib.import_module(module_name)
    except ImportError as e:
        raise HandlerLoadError(f"Cannot import handler module {module_name!r}: {e}") from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise HandlerLoadError(f"Handler {path!r} not found: {e}") from e

    if not callable(target):
        raise HandlerLoadError(f"Handler {path!r} is not callable")

    logger.debug(f"Loaded handler {path}")
    return target
