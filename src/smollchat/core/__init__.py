"""
=============================================================================
CORE NETWORKING
=============================================================================

Transport layer underneath the HTTP code:

    socket_server.py   listening socket, accept loop, signal handling
    connection.py      one client socket: bounded read, write, liveness
    thread_pool.py     bounded worker threads with backpressure

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Task, Worker, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "Task",
    "Worker",
    "WorkerState",
]
