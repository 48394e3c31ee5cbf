"""
=============================================================================
CORE: SOCKETS, WORKERS, LIFECYCLE
=============================================================================

    socket_server.py  listening socket + accept loop + signal wiring
    connection.py     buffered head/body reads on one client socket
    thread_pool.py    bounded worker pool running one connection per task
    lifecycle.py      ServerState and the in-flight tracker used to drain

=============================================================================
"""

from .connection import Connection, ConnectionState
from .lifecycle import InFlightTracker, Lifecycle, ServerState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "Connection",
    "ConnectionState",
    "InFlightTracker",
    "Lifecycle",
    "ServerState",
    "SocketServer",
    "ThreadPool",
]
