"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket: create, bind, listen, accept, close. Every
accepted client socket is wrapped in a Connection and handed to a
callback (ChatServer submits it to the worker pool).

SOCKET LIFECYCLE (server side):

    1. socket()    Create the listening socket
    2. bind()      Reserve HOST:PORT      ← fails if the port is taken
    3. listen()    Start queueing incoming connections (backlog)
    4. accept()    Take one queued connection, get a NEW socket for it
    5. close()     Release the listening socket on shutdown

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() blocks until a client connects, which would make shutdown wait
for the next visitor. The listening socket gets a 1 second timeout
instead:

    while running:
        try:
            accept()          # returns within 1s
        except timeout:
            continue          # re-check running

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM trigger shutdown(). Python only allows signal
handlers to be installed from the main thread, so a server started from a
background thread (the test suite does this) skips them and is stopped by
calling shutdown() directly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ChatConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown()
    """

    def __init__(self, config: ChatConfig):
        """
        Args:
            config: Chat configuration (host, port, backlog, read_size, timeout).

        The socket itself is created in start().
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False

        # Set once the socket is listening, cleared again on cleanup
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        """Check if the server is accepting connections."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        Before start() this is the configured address; afterwards the real
        one, which matters when port 0 let the OS pick.
        """
        if self._socket is not None:
            try:
                return self._socket.getsockname()[:2]
            except OSError:
                pass
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind right after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Small responses should go out immediately, not wait on Nagle
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Bounded accept() so the loop can notice shutdown
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        """
        Install SIGTERM/SIGINT handlers that call shutdown().

        No-op outside the main thread.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore the signal handlers that were active before start()."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> Tuple[str, int]:
        """
        Create the socket, bind and listen, without accepting yet.

        Split out of start() so a bind failure surfaces before anything
        else (banner, QR code) happens.

        Returns:
            The bound (host, port).

        Raises:
            OSError: If the address can't be bound (port taken, no
                     permission, bad host).
        """
        if self._socket is not None:
            return self.address

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        self._socket = sock
        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        return host, port

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called (blocking).

        Args:
            connection_handler: Called with each new Connection, on the
                                accept thread. It must return quickly.

        Raises:
            OSError: If binding fails.
        """
        self.bind()

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """Accept, wrap, hand off. Repeat while running."""
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue  # Normal: gives us a chance to check _running
            except OSError as e:
                # Usually the listening socket closing under us at shutdown
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                read_size=self.config.read_size,
                timeout=self.config.timeout,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                # A failing handler must not take the accept loop down with it
                logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                conn.close()

    def shutdown(self):
        """
        Stop accepting connections. Idempotent, callable from any thread
        or a signal handler.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        """Restore signal handlers and close the listening socket."""
        self._restore_signals()
        self._ready_event.clear()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting. Returns False on timeout."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() is called. Returns False on timeout."""
        return self._shutdown_event.wait(timeout)
