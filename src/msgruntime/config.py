"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All runtime settings for the message server live in one dataclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m msgruntime --port 3000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── MSG_PORT=3000 python -m msgruntime                        │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The defaults describe a sidecar-facing process: loopback only, port 8080,
no request timeout, no shutdown timeout and no cap on message size.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the message server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    HTTP SETTINGS
    - keep_alive, keep_alive_timeout, max_request_size

    THREADING SETTINGS
    - min_workers, max_workers, queue_size

    HANDLER / PROCESS
    - handler, install_signal_handlers

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. The sidecar talks to us over loopback."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick one (used by tests)."""

    backlog: int = 128
    """Maximum number of connections waiting in the kernel accept queue."""

    buffer_size: int = 8192
    """recv() size in bytes."""

    timeout: Optional[float] = None
    """
    Per-read socket timeout for a request in progress.
    None = wait as long as the client keeps the connection open.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Serve several requests per TCP connection."""

    keep_alive_timeout: float = 5.0
    """How long an idle kept-alive connection waits for its next request."""

    max_request_size: Optional[int] = None
    """
    Largest accepted message body in bytes (413 above it).
    None = unbounded; the whole body is read however long it is.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started up front."""

    max_workers: int = 32
    """Upper bound on requests handled in parallel."""

    queue_size: int = 128
    """Connections allowed to wait for a free worker before 503s."""

    # ─────────────────────────────────────────────────────────────────────
    # HANDLER / PROCESS
    # ─────────────────────────────────────────────────────────────────────

    handler: Optional[str] = None
    """
    Import path of the message handler, "package.module:attribute".
    None = the built-in echo handler.
    """

    install_signal_handlers: bool = True
    """
    Drain on SIGTERM/SIGINT. Only takes effect when the server runs in the
    main thread.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "msgruntime/1.0.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MSG_HOST              Bind address (default: 127.0.0.1)
        MSG_PORT              Port (default: 8080)
        MSG_WORKERS           Max worker threads (default: 32)
        MSG_TIMEOUT           Request read timeout in seconds (default: none)
        MSG_MAX_REQUEST_SIZE  Max body size in bytes (default: unbounded)
        MSG_HANDLER           Handler import path (default: echo)
        MSG_LOG_LEVEL         Logging level (default: INFO)
        MSG_LOG_FORMAT        Access log format (default: text)

        Keyword arguments override the environment (the CLI passes its
        explicitly given options this way).

        =====================================================================
        """
        timeout = os.getenv("MSG_TIMEOUT")
        max_request_size = os.getenv("MSG_MAX_REQUEST_SIZE")

        values = dict(
            host=os.getenv("MSG_HOST", "127.0.0.1"),
            port=int(os.getenv("MSG_PORT", "8080")),
            max_workers=int(os.getenv("MSG_WORKERS", "32")),
            timeout=float(timeout) if timeout else None,
            max_request_size=int(max_request_size) if max_request_size else None,
            handler=os.getenv("MSG_HANDLER") or None,
            log_level=os.getenv("MSG_LOG_LEVEL", "INFO"),
            log_format=os.getenv("MSG_LOG_FORMAT", "text"),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})

        config = cls(**values)
        config.min_workers = min(config.min_workers, config.max_workers)
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 0:
            raise ValueError("queue_size must be >= 0")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.max_request_size is not None and self.max_request_size < 1:
            raise ValueError("max_request_size must be >= 1")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}. Must be text or json.")
