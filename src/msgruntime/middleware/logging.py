"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request on the ``msgruntime.access`` logger.

    text (combined-log style):
        127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "POST /messages" 201 5 9 1.32ms

    json (one object per line):
        {"request_id": "3f2a9c1e", "method": "POST", "path": "/messages", ...}

Readiness probes arrive every few seconds, so ``/ready`` is skipped by
default.

An incoming X-Request-ID is reused, otherwise a short random id is
generated. Either way it is echoed back in the response.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("msgruntime.access")

DEFAULT_SKIP_PATHS = ("/ready",)


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    request_bytes: int
    status_code: int
    response_bytes: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.request_bytes} {self.response_bytes} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" or "json".
        include_request_id: Add X-Request-ID to responses.
        log_level: Level used for access lines.
        skip_paths: Paths that are never logged. Defaults to ("/ready",).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(DEFAULT_SKIP_PATHS if skip_paths is None else skip_paths)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            request_bytes=len(request.body),
            status_code=int(response.status),
            response_bytes=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
