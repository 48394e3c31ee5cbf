"""
=============================================================================
MIDDLEWARE
=============================================================================

A middleware wraps the route handler and sees every request and response
that passes through it:

    pipeline = MiddlewarePipeline().add(LoggingMiddleware())
    handler = pipeline.wrap(router.handle)

    request ──► LoggingMiddleware ──► router.handle ──► MessageEndpoint
    response ◄─ LoggingMiddleware ◄──────────────────────────┘

The first middleware added is the outermost one.

Middleware runs inside the in-flight scope of a /messages request, so
anything it does (e.g. writing an access log line) happens before the
server is allowed to finish draining.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Base class for middleware.

        class Timing(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Handled-By", "msgruntime")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process ``request``. Call ``next(request)`` to continue the chain,
        or return a response directly to short-circuit it.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """Ordered middleware chain around a final handler."""

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append ``middleware`` (first added = outermost). Chainable."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain ``MW1 → MW2 → ... → handler``.

        Wrapping happens in reverse so the first-added middleware ends up
        outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)
