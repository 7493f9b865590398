"""
=============================================================================
CHAT SERVER
=============================================================================

Ties the pieces together into a running chat server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ChatServer                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──accept──► ThreadPool ──► _process_connection()      │
    │   (main thread)           (workers)            │                     │
    │                                                ▼                     │
    │                     Connection.read_request()  (bounded read)        │
    │                                                │                     │
    │                     RequestParser.parse()      (MalformedRequest?)   │
    │                                                │                     │
    │                     LoggingMiddleware ──► _dispatch() ──► Router     │
    │                                                │                     │
    │                     ChatHandlers ◄──────────── ┘                     │
    │                          │                                           │
    │                          └── /new-message waits in ListenerRegistry  │
    │                                                                      │
    │                     response.to_bytes() ──► send ──► close           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts and wraps the socket in a Connection
    2. The connection is queued on the ThreadPool; a full queue is
       answered 503 by a short-lived thread, so accept never blocks
    3. A worker reads at most read_size bytes and parses them
    4. Middleware + router dispatch to a chat handler
    5. Exceptions become responses:

            MalformedRequest          → its status (400/405/413)
            ResourceNotFound          → 404
            ListenerCapacityExceeded  → 503
            anything else             → 500 (logged with traceback)

    6. "Connection: close" is added, the response is written, the socket
       is closed. One request per connection, always.

=============================================================================
SHUTDOWN
=============================================================================

    Ctrl+C / SIGTERM / server.shutdown()
        └─► registry.close()         waiting long-polls answer 204 now
        └─► socket server stops      no new connections
        └─► pool drains (timeout)    in-flight responses finish

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional

from .chat import ListenerCapacityExceeded, ListenerRegistry
from .config import ChatConfig
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .handlers import ChatHandlers, ResourceLookup, StaticResources
from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    MalformedRequest,
    RequestParser,
    ResourceNotFound,
    Router,
    error_response,
    internal_error,
    not_found,
    service_unavailable,
)
from .middleware import LoggingMiddleware, Middleware, MiddlewarePipeline
from .qr import render_qr_code


logger = logging.getLogger(__name__)

# Seconds a rejected client gets to finish sending its request
REJECT_TIMEOUT = 1.0


def local_ip_address(fallback: str = "127.0.0.1") -> str:
    """
    Best guess at this machine's LAN address.

    "Connecting" a UDP socket sends nothing; it only makes the OS pick the
    outbound interface, whose address getsockname() then reports.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("10.254.254.254", 1))
        return sock.getsockname()[0]
    except OSError:
        return fallback
    finally:
        sock.close()


class ChatServer:
    """
    Single-room long-poll chat server.

    Usage:

        server = ChatServer(ChatConfig(port=8080, room_name="Lobby"))
        server.run()          # blocks until Ctrl+C / SIGTERM / shutdown()

    Or, split so a bind failure can be reported before anything else:

        server.bind()         # raises OSError if the port is taken
        server.run()
    """

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        lookup: Optional[ResourceLookup] = None,
        registry: Optional[ListenerRegistry] = None,
    ):
        """
        Args:
            config: Server configuration (defaults if omitted).
            lookup: Resource lookup callback; defaults to StaticResources
                    over config.static_dir.
            registry: Listener registry; defaults to one built from config.

        Raises:
            ValueError: Invalid configuration.
        """
        self.config = config or ChatConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)

        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )

        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # CHAT COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        if registry is None:
            registry = ListenerRegistry(
                policy=self.config.delivery_policy,
                max_listeners=self.config.max_listeners,
                poll_interval=self.config.poll_interval,
            )
        self.registry = registry

        self.handlers = ChatHandlers(
            registry=self.registry,
            lookup=lookup if lookup is not None else StaticResources(self.config.static_dir),
            room_name=self.config.room_name,
            long_poll_timeout=self.config.long_poll_timeout,
        )

        self._router = self.handlers.register(Router())

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False
        self._stopped = threading.Event()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "ChatServer":
        """Add middleware (inside the access logger). Call before run()."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the real port once bound."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def public_url(self) -> str:
        """
        URL other devices on the network should open.

        A wildcard bind is advertised with the LAN address.
        """
        host, port = self.address
        if host in ("0.0.0.0", ""):
            host = local_ip_address()
        return f"http://{host}:{port}"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self) -> tuple[str, int]:
        """
        Bind the listening socket without serving yet.

        Raises:
            OSError: Port taken, permission denied, bad host.
        """
        return self._socket_server.bind()

    def run(self, configure_logging: bool = True, banner: bool = True):
        """
        Serve until shutdown (blocking).

        Args:
            configure_logging: Set up the root logger from config.
            banner: Print the startup banner (and QR code if enabled).

        Raises:
            OSError: If binding fails.
        """
        if configure_logging:
            self._setup_logging()

        self.bind()

        self._handler = self._middleware.wrap(self._dispatch)
        self._thread_pool.start()
        self._running = True
        self._stopped.clear()

        if banner:
            self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop the server from any thread. run() returns shortly after."""
        self.registry.close()
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until connections are being accepted."""
        return self._socket_server.wait_until_ready(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has finished cleaning up."""
        return self._stopped.wait(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("smollchat").setLevel(level)

    def _print_startup_banner(self):
        url = self.public_url()

        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  {self.config.server_name} - room \"{self.config.room_name}\"")
        print(f"  Join at {url}")
        print(f"  Workers: {self.config.min_workers}-{self.config.max_workers}, "
              f"long-poll limit: {self.config.max_listeners}")
        print("  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

        if self.config.qrcode:
            render_qr_code(url)
            print()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False

        self.registry.close()
        self._thread_pool.shutdown(wait=True, timeout=5.0)

        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a connection for a worker (runs on the accept thread)."""
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            submitted = False  # Pool already shutting down

        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool full, rejecting connection")
            threading.Thread(
                target=self._reject_connection,
                args=(conn,),
                name=f"Reject-{conn.id}",
                daemon=True,
            ).start()

    def _reject_connection(self, conn: Connection):
        """
        Answer 503 off the accept thread.

        The request is read first, bounded by REJECT_TIMEOUT. A socket closed
        with unread input is reset, and the reset can discard the 503.
        """
        with conn:
            conn.socket.settimeout(REJECT_TIMEOUT)
            try:
                conn.read_request()
            except TimeoutError:
                pass  # Slow client; answer anyway
            self._send(conn, service_unavailable())

    def _process_connection(self, conn: Connection):
        """Read, parse, dispatch, respond, close (runs on a worker)."""
        with conn:
            try:
                raw_request = conn.read_request()
            except TimeoutError as e:
                logger.info(f"[{conn.id}] {e}")
                self._send(conn, error_response(HTTPStatus.REQUEST_TIMEOUT))
                return

            if raw_request is None:
                logger.debug(f"[{conn.id}] Client closed without sending a request")
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
            except MalformedRequest as e:
                logger.warning(f"[{conn.id}] Malformed request from {conn.client_ip}: {e}")
                self._send(conn, error_response(e.status_code))
                return

            request.connection = conn
            conn.state = ConnectionState.PROCESSING

            try:
                response = self._handler(request)
            except Exception as e:
                # Middleware failure; _dispatch itself never raises
                logger.exception(f"[{conn.id}] Unhandled error: {e}")
                response = internal_error()

            self._send(conn, response)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Route the request and map handler exceptions to responses."""
        try:
            return self._router.handle(request)

        except ResourceNotFound as e:
            logger.info(f"404 {request.method} {request.path}: {e}")
            return not_found()

        except MalformedRequest as e:
            logger.warning(f"{e.status_code} {request.method} {request.path}: {e}")
            return error_response(e.status_code)

        except ListenerCapacityExceeded as e:
            logger.warning(f"503 {request.method} {request.path}: {e}")
            return service_unavailable()

        except Exception as e:
            logger.exception(f"Handler error for {request.method} {request.path}: {e}")
            return internal_error()

    def _send(self, conn: Connection, response: HTTPResponse) -> bool:
        response.headers.setdefault("Connection", "close")
        return conn.send_response(response.to_bytes())
