"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler function.

The runtime only ever registers two routes:

    GET   /ready      readiness probe
    POST  /messages   message delivery (meta: tracked=True)

Paths match exactly (a trailing slash is ignored).

Route metadata is how the server learns which routes take part in
in-flight tracking: it matches the route from the request head, looks at
``route.meta`` and only then reads the body. That is why match() and
handle() are separate steps.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A registered route: path, method, handler and metadata."""

    path: str
    method: str
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class Router:
    """
    HTTP request router.

    Usage:

        router = Router()
        router.add_route("/ready", readiness, method="GET")
        router.add_route("/messages", endpoint.handle, method="POST",
                         tracked=True)

    First registered, first matched.
    """

    def __init__(self):
        self._routes: List[Route] = []

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: str = "GET",
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register a route.

        Extra keyword arguments become ``route.meta``.
        """
        route = Route(
            path=self._normalize(path),
            method=method.upper(),
            handler=handler,
            name=name,
            meta=meta,
        )
        self._routes.append(route)
        return route

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[Route]:
        """Find the first route matching method and path, or None."""
        path = self._normalize(path)
        method = method.upper()

        for route in self._routes:
            if route.method == method and route.path == path:
                return route

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for ``path``, used for the 405 Allow header."""
        path = self._normalize(path)
        return sorted({route.method for route in self._routes if route.path == path})

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch a request.

        Returns:
            The handler's response, 405 or 404.
        """
        route = self.match(request.method, request.path)
        if route:
            return route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")
