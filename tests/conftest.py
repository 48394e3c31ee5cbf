"""
pytest configuration and fixtures.
"""

import http.client
import socket
import threading
from dataclasses import replace
from typing import Callable, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from msgruntime import MessageServer, ServerConfig
from msgruntime.handlers import MessageHandler


@pytest.fixture
def sample_message_request() -> bytes:
    """A complete POST /messages request."""
    body = b"hello"
    return (
        b"POST /messages HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8080\r\n"
        b"Content-Type: application/octet-stream\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
        + body
    )


@pytest.fixture
def sample_ready_request() -> bytes:
    return (
        b"GET /ready HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"\r\n"
    )


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: any free port, no signal handlers."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=16,
        install_signal_handlers=False,
    )


class TestServer:
    """Runs a MessageServer in a background thread."""

    __test__ = False

    def __init__(self, server: MessageServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "TestServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self, timeout: float = 10.0):
        self.server.shutdown()
        self.join(timeout)

    def join(self, timeout: float = 10.0) -> bool:
        """Wait for run() to return. True if it did."""
        if self._thread:
            self._thread.join(timeout=timeout)
            return not self._thread.is_alive()
        return True

    def connect(self) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=5.0)

    def request(self, method: str, path: str, body: Optional[bytes] = None,
                headers: Optional[dict] = None, timeout: float = 10.0):
        """One request on a fresh connection. Returns (status, headers, body)."""
        conn = http.client.HTTPConnection("127.0.0.1", self.port, timeout=timeout)
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def post_message(self, body: bytes, **kwargs):
        headers = {"Content-Type": "application/octet-stream"}
        return self.request("POST", "/messages", body=body, headers=headers, **kwargs)


@pytest.fixture
def make_server(config: ServerConfig) -> Generator[Callable[..., TestServer], None, None]:
    """Factory: start a server for a handler; stopped after the test."""
    started: List[TestServer] = []

    def factory(handler: Optional[MessageHandler] = None, **overrides) -> TestServer:
        cfg = replace(config, **overrides)
        test_srv = TestServer(MessageServer(handler, cfg)).start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(make_server) -> TestServer:
    """A running server with the echo handler."""
    return make_server()


def recv_response(sock: socket.socket) -> bytes:
    """Read one complete response (Content-Length framed or bodiless)."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())

    while len(body) < length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        body += chunk

    return head + b"\r\n\r\n" + body


@pytest.fixture
def recv() -> Callable[[socket.socket], bytes]:
    return recv_response
