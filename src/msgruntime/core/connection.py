"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with buffered, HTTP-aware reads.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP does not preserve message boundaries. A request head may arrive split
across several recv() calls, and the first recv() may already contain part
of the body (or the start of the next pipelined request). So everything
goes through ``_buffer``:

    recv() → _buffer → read_head()  consumes up to and including \\r\\n\\r\\n
                     → read_body()  consumes exactly the framed body
                     → leftovers stay for the next request on this socket

=============================================================================
WHY HEAD AND BODY ARE SEPARATE CALLS
=============================================================================

The server must register a /messages request as in flight BEFORE the body
is read, and it only knows which route it is dealing with once the head is
parsed:

    head = conn.read_head()            # not tracked yet
    request = parser.parse_head(head)
    match = router.match(...)
    with tracker.track():              # /messages only
        request.body = conn.read_body(request)
        ...

=============================================================================
TIMEOUTS
=============================================================================

``timeout`` defaults to None: a request head or body is read for as long as
the client keeps the connection open. The only timer is
``keep_alive_timeout``, which bounds how long an IDLE reused connection
waits for its next request; it never applies to a request already started.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..http.request import HTTPRequest, HTTPParseError


logger = logging.getLogger(__name__)

HEADER_TERMINATOR = b"\r\n\r\n"
MAX_HEAD_SIZE = 64 * 1024


class ConnectionState(Enum):
    """Connection lifecycle states, mostly for logs and debugging."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer (ip, port).
        id: Short random id used as a log prefix.
        state: Current ConnectionState.
        requests_handled: Requests started on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = None
    keep_alive_timeout: float = 5.0
    max_request_size: Optional[int] = None

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self) -> Optional[bytes]:
        """
        Read one request head (request line + headers + blank line).

        Returns:
            The head bytes including the terminator, or None if the client
            closed the connection (or an idle keep-alive connection timed
            out) before a complete head arrived.

        Raises:
            TimeoutError: First request timed out (only with a timeout set).
            HTTPParseError: Head exceeds MAX_HEAD_SIZE (413).
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        # Idle wait for the next request on a reused connection is bounded
        if self.requests_handled > 0 and not self._buffer:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEADER_TERMINATOR not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    if self._buffer:
                        logger.debug(f"[{self.id}] Client closed mid-head")
                    return None

                self._buffer += chunk

                # Request has started: the idle timer no longer applies
                self.socket.settimeout(self.timeout)

                if len(self._buffer) > MAX_HEAD_SIZE and HEADER_TERMINATOR not in self._buffer:
                    raise HTTPParseError(
                        f"Request head too large: {len(self._buffer)} bytes",
                        status_code=413
                    )

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

        head_end = self._buffer.find(HEADER_TERMINATOR) + len(HEADER_TERMINATOR)
        head = self._buffer[:head_end]
        self._buffer = self._buffer[head_end:]

        self.requests_handled += 1
        self.last_activity = time.time()
        return head

    def read_body(self, request: HTTPRequest) -> bytes:
        """
        Read the complete body of ``request`` into memory.

        Handles ``Expect: 100-continue`` by sending the interim response
        first, then reads either Content-Length bytes or a chunked body.

        Raises:
            ConnectionError: Client went away before the body was complete.
            HTTPParseError: Malformed chunked framing, or a body over
                            ``max_request_size`` when one is set.
        """
        if not request.has_body:
            return b""

        if request.expects_continue and not self._buffer:
            self.socket.sendall(b"HTTP/1.1 100 Continue\r\n\r\n")

        if request.is_chunked:
            return self._read_chunked()
        return self._read_exact(request.content_length)

    def _read_exact(self, length: int) -> bytes:
        """Take exactly ``length`` bytes from the buffer and the socket."""
        if self.max_request_size is not None and length > self.max_request_size:
            raise HTTPParseError(f"Request body too large: {length} bytes", status_code=413)

        parts = [self._buffer[:length]]
        received = len(parts[0])
        self._buffer = self._buffer[length:]

        while received < length:
            chunk = self._recv(min(self.buffer_size, length - received))
            if not chunk:
                raise ConnectionError(
                    f"Connection closed mid-body ({received}/{length} bytes)"
                )
            parts.append(chunk)
            received += len(chunk)

        self.last_activity = time.time()
        return b"".join(parts)

    def _read_line(self) -> bytes:
        """Read one CRLF-terminated line (without the CRLF)."""
        while b"\r\n" not in self._buffer:
            chunk = self._recv()
            if not chunk:
                raise ConnectionError("Connection closed mid-chunk")
            self._buffer += chunk
            if len(self._buffer) > MAX_HEAD_SIZE and b"\r\n" not in self._buffer:
                raise HTTPParseError("Chunk header line too long")

        line, _, self._buffer = self._buffer.partition(b"\r\n")
        return line

    def _read_chunked(self) -> bytes:
        """
        Decode a chunked body (RFC 7230 section 4.1).

            <hex size>[;ext]\\r\\n <data>\\r\\n ... 0\\r\\n [trailers] \\r\\n

        Chunk extensions and trailers are read and discarded.
        """
        parts = []
        total = 0

        while True:
            size_line = self._read_line()
            size_token = size_line.split(b";", 1)[0].strip()
            try:
                size = int(size_token, 16)
            except ValueError:
                raise HTTPParseError(f"Invalid chunk size: {size_token!r}")
            if size < 0:
                raise HTTPParseError(f"Invalid chunk size: {size_token!r}")

            if size == 0:
                # Trailer section ends with an empty line
                while self._read_line():
                    pass
                break

            total += size
            if self.max_request_size is not None and total > self.max_request_size:
                raise HTTPParseError(f"Request body too large: {total} bytes", status_code=413)

            parts.append(self._read_exact(size))
            if self._read_line():
                raise HTTPParseError("Missing CRLF after chunk data")

        return b"".join(parts)

    def _recv(self, size: Optional[int] = None) -> bytes:
        """
        recv() that maps abrupt disconnects to end-of-stream.

        Returns:
            Received bytes, or b"" if the peer is gone.
        """
        try:
            data = self.socket.recv(size or self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a serialized response with sendall().

        Returns:
            True on success, False if the client is gone. Write failures are
            confined to this connection; they are logged, not raised.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: FIN, drain unread input briefly, release the fd.

        Idempotent.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        """Mark connection as waiting for its next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
