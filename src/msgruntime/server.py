"""
=============================================================================
MESSAGE SERVER
=============================================================================

The HTTP face of a message-processing step. A sidecar on the same host
waits for ``GET /ready``, then POSTs each message to ``/messages`` and
uses the status code to tell output, no output and failure apart.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         REQUEST FLOW                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.accept()                                             │
    │        │                                                             │
    │        ▼                                                             │
    │   ThreadPool.submit(_process_connection)   (503 if the queue is full)│
    │        │                                                             │
    │        ▼   worker thread                                             │
    │   read_head → parse_head → router.match                             │
    │        │                                                             │
    │        ├── GET /ready     ─────────────────────────────► 204        │
    │        │                                                             │
    │        └── POST /messages                                            │
    │               with tracker.track():                                  │
    │                   read_body                                          │
    │                   middleware → MessageEndpoint → handler             │
    │                   send 201 / 204 / 500                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    SIGTERM / SIGINT / shutdown()
        │
        ▼
    lifecycle: RUNNING → DRAINING        (once; later triggers are ignored)
        │
        ▼
    drain thread: tracker.wait_idle()    (no timeout)
        │                                 listener still accepting,
        │                                 /ready still 204,
        │                                 new /messages still served
        ▼
    SocketServer.shutdown() → listener closed
        │
        ▼
    run(): queued connections get 503, wait_idle() again → STOPPED,
           run() returns (workers stuck on idle connections are not awaited)

A handler that never returns keeps the server in DRAINING forever.

=============================================================================
"""

import os
import logging
import threading
from contextlib import nullcontext
from typing import Optional, Callable, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, ThreadPool
from .core.lifecycle import InFlightTracker, Lifecycle, ServerState
from .handlers import (
    MessageHandler, MessageEndpoint, readiness, load_handler, failure_message,
)
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus,
    Router, internal_error, error_response, service_unavailable,
)
from .middleware import MiddlewarePipeline, LoggingMiddleware


logger = logging.getLogger(__name__)


class MessageServer:
    """
    Message delivery server.

    =========================================================================
    USAGE
    =========================================================================

        def handler(message: bytes, context) -> Optional[bytes]:
            return message.upper()

        server = MessageServer(handler)
        server.run()                 # blocks until drained

        # From another thread (or a signal):
        server.shutdown()

    =========================================================================
    ROUTES
    =========================================================================

        GET   /ready      204, always
        POST  /messages   201 + output | 204 | 500 + failure message

    Everything else is 404, or 405 for a known path with the wrong method.

    =========================================================================
    """

    def __init__(
        self,
        handler: Optional[MessageHandler] = None,
        config: Optional[ServerConfig] = None,
    ):
        """
        Args:
            handler: Message handler. Defaults to ``config.handler`` when set,
                     otherwise the echo handler.
            config: Server configuration. Validated here.

        Raises:
            ValueError: Invalid configuration.
            HandlerLoadError: ``config.handler`` cannot be resolved.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        if handler is None and self.config.handler:
            handler = load_handler(self.config.handler)

        # ─────────────────────────────────────────────────────────────────
        # SHARED STATE (one per server, never global)
        # ─────────────────────────────────────────────────────────────────
        self.lifecycle = Lifecycle()
        self.tracker = InFlightTracker()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config, on_signal=self.shutdown)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # ROUTES
        # ─────────────────────────────────────────────────────────────────
        self._endpoint = MessageEndpoint(handler)
        self._router = Router()
        self._router.add_route("/ready", readiness, method="GET", name="ready")
        self._router.add_route(
            "/messages", self._endpoint.handle, method="POST", name="messages",
            tracked=True,
        )

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._drain_thread: Optional[threading.Thread] = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    @property
    def handler(self) -> MessageHandler:
        return self._endpoint.handler

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self.lifecycle.state

    @property
    def in_flight(self) -> int:
        """Number of /messages requests currently being processed."""
        return self.tracker.count

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). Only meaningful once listening."""
        return self._socket_server.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener accepts connections."""
        return self._socket_server.wait_until_listening(timeout)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket has been closed."""
        return self._socket_server.wait_closed(timeout)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has finished shutting down."""
        return self.lifecycle.wait_stopped(timeout)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Serve until drained (blocking).

        Raises:
            RuntimeError: The server was already started once.
            OSError: The listener could not bind.
        """
        self.lifecycle.mark_running()
        self._setup_logging()

        self._handler = self._middleware.wrap(self._router.handle)
        self._thread_pool.start()

        logger.info(
            f"Starting message server (pid {os.getpid()}) on "
            f"{self.config.host}:{self.config.port} "
            f"with handler {self._endpoint.handler_name}"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
            self.shutdown()
        finally:
            self._stop()

    def shutdown(self) -> bool:
        """
        Begin a graceful shutdown and return immediately.

        Moves the server to DRAINING and starts the drain thread. Safe to
        call from signal handlers and other threads.

        Returns:
            True if this call started the drain, False if the server was not
            running or was already draining.
        """
        if not self.lifecycle.begin_draining():
            logger.info(f"Shutdown requested in state {self.state.value}, ignoring")
            return False

        logger.info(f"Draining: waiting for {self.tracker.count} in-flight request(s)")

        self._drain_thread = threading.Thread(
            target=self._drain, name="msg-drain", daemon=True
        )
        self._drain_thread.start()
        return True

    def _drain(self):
        self.tracker.wait_idle()
        logger.info("All in-flight requests finished")
        self._socket_server.shutdown()

    def _stop(self):
        """Runs once the accept loop has exited and the listener is closed."""
        # Queued connections never reached a worker, so none of them is in flight
        for task in self._thread_pool.shutdown(wait=False, cancel_pending=True):
            conn = task.args[0]
            logger.info(f"[{conn.id}] Server stopping, rejecting queued connection")
            self._reject(conn, "Server shutting down")

        self.tracker.wait_idle()

        self.lifecycle.mark_stopped()
        logger.info("Server stopped")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("msgruntime").setLevel(level)

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand an accepted connection to the pool (accept thread)."""
        try:
            submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        except RuntimeError as e:
            logger.warning(f"[{conn.id}] Cannot dispatch connection: {e}")
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._reject(conn, "Server overloaded")

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (worker thread).

        A /messages request is registered in the tracker before its body is
        read and released after its response was written, whatever happens
        in between.
        """
        with conn:
            while True:
                try:
                    head = conn.read_head()
                    if head is None:
                        break

                    try:
                        request = self._parser.parse_head(head, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    route = self._router.match(request.method, request.path)
                    tracked = bool(route and route.meta.get("tracked"))

                    with self.tracker.track() if tracked else nullcontext():
                        keep_open = self._serve(conn, request)

                    if not keep_open:
                        break

                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    break
                except OSError as e:
                    logger.warning(f"[{conn.id}] I/O error: {e}")
                    break
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _serve(self, conn: Connection, request: HTTPRequest) -> bool:
        """
        Read the body, dispatch and respond.

        Returns:
            True if the connection may serve another request.
        """
        request.body = conn.read_body(request)

        conn.state = ConnectionState.PROCESSING
        try:
            response = self._handler(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Request pipeline error: {e}")
            response = internal_error(failure_message(e))

        keep_alive = (
            request.is_keep_alive
            and self.config.keep_alive
            and self.lifecycle.state is ServerState.RUNNING
        )
        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault(
                "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
            )
        else:
            response.headers["Connection"] = "close"

        sent = conn.send_response(response.to_bytes(self.config.server_name))
        return sent and keep_alive

    def _send_error(self, conn: Connection, status: int, message: str):
        """Error response for failures outside the handler (parse, timeout)."""
        self._send_closing(conn, error_response(HTTPStatus(status), message))

    def _reject(self, conn: Connection, message: str):
        """503 and close, for connections no worker will serve."""
        self._send_closing(conn, service_unavailable(message, retry_after=1))
        conn.close()

    def _send_closing(self, conn: Connection, response: HTTPResponse):
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

