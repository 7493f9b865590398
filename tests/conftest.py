"""
pytest configuration and fixtures.
"""

import socket
from dataclasses import replace
import threading
import time
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from smollchat import ChatServer, ChatConfig


PAGES = {
    "index.html": b"<h1>Welcome to {{}}</h1><p>{{}}</p>",
    "chat.html": b"<title>{{}}</title>",
    "chat.js": b"console.log('chat');",
    "style.css": b"body { margin: 0; }",
    "logo.png": b"\x89PNG\r\n\x1a\n",
    "notes.txt": b"not served",
}


@pytest.fixture
def sample_login_request() -> bytes:
    """POST /login as a browser form sends it."""
    body = b"username=alice"
    return (
        b"POST /login HTTP/1.1\r\n"
        b"Host: 192.168.4.28:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def sample_message_request() -> bytes:
    """POST /message from a logged-in user."""
    body = b"hi there"
    return (
        b"POST /message HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Cookie: username=bob\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def pages() -> dict:
    """In-memory resources, keyed by name."""
    return dict(PAGES)


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    """A static directory on disk holding PAGES."""
    for name, content in PAGES.items():
        (tmp_path / name).write_bytes(content)
    return tmp_path


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Runs a ChatServer in a background thread."""

    __test__ = False  # Not a test class, despite the name

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start the server and wait until it accepts connections."""
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False, "banner": False},
            daemon=True
        )
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, raw: bytes, timeout: float = 10.0) -> bytes:
        """Send raw request bytes, return everything the server sends back."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as sock:
            sock.sendall(raw)
            chunks = []
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll predicate until it returns True or timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    """Polling helper: wait_for(lambda: registry.pending == 2)."""
    return _wait_for


@pytest.fixture
def chat_config(free_port: int, static_dir: Path) -> ChatConfig:
    """Test configuration: loopback, small pool, short long-poll."""
    return ChatConfig(
        host="127.0.0.1",
        port=free_port,
        min_workers=2,
        max_workers=8,
        max_listeners=4,
        long_poll_timeout=2.0,
        poll_interval=0.1,
        timeout=5.0,
        static_dir=str(static_dir),
        room_name="Lobby",
        log_level="WARNING",
    )


@pytest.fixture
def chat_server(chat_config: ChatConfig) -> Generator[TestServer, None, None]:
    """A running chat server."""
    test_srv = TestServer(ChatServer(chat_config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def server_factory(chat_config: ChatConfig):
    """Start servers with chat_config plus overrides; all stopped at teardown."""
    started = []

    def factory(**overrides) -> TestServer:
        test_srv = TestServer(ChatServer(replace(chat_config, **overrides)))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()
