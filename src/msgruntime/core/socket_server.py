"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket: create, bind, listen, accept, close.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   start(connection_handler)                                          │
    │       ├──► _create_socket()    SO_REUSEADDR, TCP_NODELAY, timeout    │
    │       ├──► bind() / listen()                                         │
    │       ├──► _setup_signals()    SIGTERM / SIGINT → on_signal()        │
    │       └──► _accept_loop()      BLOCKS until shutdown()               │
    │                 └──► Connection(...) → connection_handler(conn)      │
    │                                                                      │
    │   shutdown()                   stop the loop (any thread)            │
    │   _cleanup()                   restore signals, close the listener   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SIGNALS DO NOT STOP THE LISTENER
=============================================================================

SIGTERM/SIGINT do NOT call shutdown() here. They call ``on_signal``, which
the message server uses to start DRAINING. The accept loop keeps running
while the server drains, and the listener only closes once the drain
coordinator calls shutdown() after the last in-flight request finishes.

    SIGTERM ──► on_signal() ──► drain coordinator ──► ... ──► shutdown()

SIGKILL cannot be caught; a hard kill bypasses all of this.

Python only allows signal handlers to be installed from the main thread.
When start() runs elsewhere (tests run the server in a background thread)
signal installation is skipped and shutdown must be triggered explicitly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    TCP accept loop.

    Usage:
        server = SocketServer(config, on_signal=coordinator.request_shutdown)
        server.start(handle_connection)   # blocks until shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        on_signal: Optional[Callable[[], None]] = None,
        poll_interval: float = 0.25,
    ):
        """
        Args:
            config: Host, port, backlog and per-connection settings.
            on_signal: Called (in the main thread) on SIGTERM/SIGINT.
                       Defaults to shutdown().
            poll_interval: accept() timeout; bounds how long shutdown()
                           takes to be noticed by the loop.
        """
        self.config = config
        self.on_signal = on_signal or self.shutdown
        self.poll_interval = poll_interval

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._stop_requested = threading.Event()

        self._listening = threading.Event()
        self._closed = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._listening.is_set() and not self._stop_requested.is_set()

    @property
    def address(self) -> Tuple[str, int]:
        """Actual bound (host, port); differs from config when port=0."""
        return self._bound_address or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Small responses (204s) should not sit in Nagle's buffer
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Periodic wake-up so the loop notices shutdown()
        sock.settimeout(self.poll_interval)

        return sock

    def _setup_signals(self):
        if not self.config.install_signal_handlers:
            return

        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating graceful shutdown...")
            self.on_signal()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and run the accept loop.

        BLOCKS until shutdown() is called. The listening socket is closed
        before this returns. A shutdown() requested before start() makes
        the loop exit right after binding.

        Raises:
            OSError: bind() failed (port in use, permission denied).
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            self._closed.set()
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]
        self._closed.clear()

        try:
            self._setup_signals()
            logger.info(f"Listening on {self.address[0]}:{self.address[1]}")
            self._listening.set()
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while not self._stop_requested.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_requested.is_set():
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting and close the listener.

        Safe from any thread and idempotent. The socket itself is closed by
        the accept thread within ``poll_interval``; use wait_closed() to
        block until it is.
        """
        if not self._stop_requested.is_set():
            logger.info("Stopping listener...")
        self._stop_requested.set()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._listening.clear()
        self._closed.set()
        logger.info("Listener closed")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until bind()/listen() succeeded. True if listening."""
        return self._listening.wait(timeout)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is closed. True if closed."""
        return self._closed.wait(timeout)
