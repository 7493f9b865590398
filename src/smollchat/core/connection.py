"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: read one request, write one response,
close. The chat server never keeps a connection open for a second request.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP only guarantees that bytes arrive in order and intact. A request sent
in one write can arrive in several recv() calls:

    First recv():  b"POST /message HT"
    Second recv(): b"TP/1.1\\r\\nContent-Length: 8\\r\\n\\r\\nhi the"
    Third recv():  b"re"

So read_request() keeps reading until it has the blank line that ends the
headers AND the number of body bytes announced by Content-Length.

=============================================================================
BOUNDED READS
=============================================================================

Every request is read into a buffer of at most read_size bytes (8 KiB by
default). Anything the client sends past that is never read; the parser
sees the truncated buffer and either copes (the body is cut to
Content-Length anyway) or rejects it as malformed. A chat message that
doesn't fit in 8 KiB is not a chat message.

=============================================================================
NOTICING A DEPARTED CLIENT
=============================================================================

A long-poll request sits on its connection for up to 30 seconds. If the
browser tab is closed in the meantime, the peer sends a FIN and the socket
becomes readable with zero bytes pending:

    select([sock], [], [], 0)   → readable
    sock.recv(1, MSG_PEEK)      → b""        ← peer is gone

peer_connected() runs that check without consuming anything, so the
long-poll can give up its worker instead of waiting out the timeout.

=============================================================================
"""

import select
import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and debugging."""

    NEW = "new"                # Just accepted, nothing read yet
    READING = "reading"        # Reading request bytes
    PROCESSING = "processing"  # Request parsed, handler running (maybe long-polling)
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # Shutdown sequence in progress
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Lifecycle                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept() ──► NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSED │
    │                                        │                             │
    │                                        └── long-poll waits here,     │
    │                                            peer_connected() polled   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier for log lines.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        last_activity: Timestamp of the last read or write.
    """

    # Required parameters
    socket: socket.socket
    address: tuple[str, int]

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    # Configuration (passed from ChatConfig)
    read_size: int = 8192             # Upper bound on bytes read per request
    timeout: Optional[float] = 30.0   # Read/write timeout

    def __post_init__(self):
        """Configure the socket once the dataclass fields are set."""
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one HTTP request from the socket, up to read_size bytes.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_request() Flow                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. recv() until \\r\\n\\r\\n seen, EOF, or read_size reached     │
        │   2. Pull Content-Length out of the header block                │
        │   3. recv() until the body is complete, EOF, or read_size       │
        │   4. Return everything read (never more than read_size)         │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The request bytes, or None if the client closed the connection
            without sending anything.

        Raises:
            TimeoutError: If the client stalls mid-request.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()
        buffer = b""

        try:
            # ─────────────────────────────────────────────────────────────
            # STEP 1: Read until we have the complete header block
            # ─────────────────────────────────────────────────────────────
            while b"\r\n\r\n" not in buffer and len(buffer) < self.read_size:
                chunk = self._recv(self.read_size - len(buffer))
                if not chunk:
                    # EOF: return what we have and let the parser judge it
                    return buffer or None
                buffer += chunk

            header_end = buffer.find(b"\r\n\r\n")
            if header_end == -1:
                return buffer  # read_size reached inside the headers

            # ─────────────────────────────────────────────────────────────
            # STEP 2: Read the rest of the body, still bounded
            # ─────────────────────────────────────────────────────────────
            body_start = header_end + 4
            content_length = self._parse_content_length(buffer[:header_end])
            wanted = min(body_start + content_length, self.read_size)

            while len(buffer) < wanted:
                chunk = self._recv(wanted - len(buffer))
                if not chunk:
                    break  # Client closed mid-body; the parser reports it
                buffer += chunk

            self.last_activity = time.time()
            return buffer

        except socket.timeout:
            if not buffer:
                # Connected but never said anything
                raise TimeoutError("Request read timeout") from None
            raise TimeoutError(
                f"Request read timeout after {len(buffer)} bytes"
            ) from None

    def _recv(self, size: int) -> bytes:
        """
        Receive up to size bytes.

        Returns:
            Received bytes, or b"" if the peer reset the connection.
        """
        try:
            data = self.socket.recv(min(size, self.read_size))
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Find Content-Length in raw header bytes, before full parsing.

        Anything unusable counts as 0 here. The parser does the strict
        validation and rejects bad values with a 400.
        """
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                value = line.split(":", 1)[1].strip()
                if value.isascii() and value.isdigit():
                    return int(value)
                return 0
        return 0

    # =========================================================================
    # LIVENESS
    # =========================================================================

    def peer_connected(self) -> bool:
        """
        Check, without blocking, whether the client is still there.

        Returns:
            False if the peer closed or reset the connection.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return False

        try:
            readable, _, _ = select.select([self.socket], [], [], 0)
            if not readable:
                return True  # Nothing pending: still connected
            # Readable: either data (ignored, one request per connection) or EOF
            return self.socket.recv(1, socket.MSG_PEEK) != b""
        except (OSError, ValueError):
            return False

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes to the client.

        sendall() keeps writing until every byte is out or an error occurs.

        Returns:
            True if the send succeeded, False if the connection was lost.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            # Reset, broken pipe, timeout: the client is gone either way
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        shutdown(SHUT_WR) sends our FIN first so the client sees a clean end
        of response, then the file descriptor is released. Safe to call
        more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows:

            with conn:
                data = conn.read_request()
                conn.send_response(response)
            # closed here, even on error
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
