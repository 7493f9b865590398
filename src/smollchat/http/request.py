"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses the raw bytes read from a client socket into a structured
HTTPRequest. This is the inbound half of the message framer; the outbound
half (serialization) lives in response.py.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  POST /message?room=main HTTP/1.1\r\n        ← REQUEST LINE          │
    │  ─┬──  ───┬─── ────┬──── ────┬───                                    │
    │   │       │        │         │                                       │
    │ Method   Path    Query    Version                                    │
    │                                                                      │
    │  Host: 192.168.4.28:8080\r\n                 ← HEADERS               │
    │  Cookie: username=alice\r\n                    "Key: Value" lines    │
    │  Content-Length: 8\r\n                                               │
    │  \r\n                                        ← BLANK LINE            │
    │  hi there                                    ← BODY (8 bytes)        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The server reads each request into a bounded buffer, so anything past
Content-Length (or past the read limit) is simply ignored: the body is
always exactly Content-Length bytes taken from after the blank line.

=============================================================================
WHAT COUNTS AS MALFORMED
=============================================================================

    Request line without exactly 3 tokens      → 400
    Method outside VALID_METHODS               → 405
    Version that doesn't start with "HTTP/"    → 400
    Header line without ": "                   → 400
    Content-Length that isn't a plain integer  → 400
    Body shorter than Content-Length           → 400
    Buffer larger than max_request_size        → 413

Every one of these raises MalformedRequest. Nothing else escapes parse(),
so the connection handler can answer with a 4xx and move on.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import unquote_plus


class MalformedRequest(Exception):
    """
    Raised when a request can't be parsed or is missing something a
    handler needs.

    Carries the HTTP status code that should be sent back:

        400 Bad Request        - Bad syntax, bad Content-Length, short body
        405 Method Not Allowed - Unknown method
        413 Payload Too Large  - Request exceeds the size limit
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code  # HTTP status to return


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         The HTTP method (GET, POST, ...)

        path:           Request path WITHOUT query string
                        "/static/chat.js" not "/static/chat.js?v=2"

        version:        HTTP version string, echoed back in the response

        headers:        Headers with LOWERCASE keys
                        {"content-length": "8", "cookie": "username=alice"}

        query_params:   Parsed query string, or None when the target had
                        no "?" at all.  "?a=1&b=2" → {"a": "1", "b": "2"}

        body:           Exactly Content-Length bytes, or None when the
                        header was absent or zero

        path_params:    Values captured by the router ("*path" routes)

        client_address: (ip, port) of the client

        raw:            The original unparsed bytes

        connection:     The Connection the request arrived on. Set by the
                        server; long-poll handlers use it to notice when
                        the browser goes away.

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Optional[Dict[str, str]] = None
    body: Optional[bytes] = None

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)
    connection: Optional[Any] = field(default=None, repr=False, compare=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_length(self) -> int:
        """Length of the parsed body (0 when there is none)."""
        return len(self.body) if self.body is not None else 0

    @property
    def host(self) -> str:
        """The Host header value, or "" when the client didn't send one."""
        return self.headers.get("host", "")

    @property
    def text(self) -> str:
        """
        The body decoded as UTF-8 ("" when there is no body).

        Invalid sequences are replaced rather than raising; chat text is
        displayed, never interpreted.
        """
        if self.body is None:
            return ""
        return self.body.decode("utf-8", errors="replace")

    @property
    def cookies(self) -> Dict[str, str]:
        """
        Parse the Cookie header into a dict.

            Cookie: username=alice; theme=dark
            → {"username": "alice", "theme": "dark"}

        Pieces without "=" are skipped. Values are taken verbatim; the login
        handler stores the raw form body as the cookie, so there is nothing
        to unescape.
        """
        cookies: Dict[str, str] = {}
        for part in self.headers.get("cookie", "").split(";"):
            name, sep, value = part.strip().partition("=")
            if sep and name:
                cookies[name] = value
        return cookies

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Works for any casing because keys are stored lowercase:
            request.get_header("Content-Length") == request.get_header("content-length")
        """
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get a query parameter, or default when absent (or no query at all)."""
        if self.query_params is None:
            return default
        return self.query_params.get(name, default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER PIPELINE
    ==========================================================================

        Raw bytes
            │
            ▼
        1. Size check ─────────────── too large? → 413
            │
            ▼
        2. Split head / body at the first \\r\\n\\r\\n
            │   (no blank line → everything is head, body tail is empty)
            ▼
        3. Request line: METHOD SP TARGET SP VERSION
            │   TARGET split on "?" into path + query
            ▼
        4. Header lines: split each on the first ": "
            │   keys lowercased, repeats joined with ", "
            ▼
        5. Body: first Content-Length bytes of the tail
            │
            ▼
        HTTPRequest

    Every step is a single linear pass, so parsing is O(len(data)).

    ==========================================================================
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    def __init__(self, max_request_size: int = 1024 * 1024):
        """
        Initialize the request parser.

        Args:
            max_request_size: Largest buffer accepted, in bytes. The server
                              never reads more than its fixed read size, so
                              this only matters when the parser is used on
                              its own.
        """
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw bytes read from the socket.
            client_address: Client's (ip, port) tuple, kept for logging.

        Returns:
            Parsed HTTPRequest.

        Raises:
            MalformedRequest: If the request is malformed (see module doc).
        """
        # =====================================================================
        # STEP 1: Reject oversized buffers
        # =====================================================================
        if len(data) > self.max_request_size:
            raise MalformedRequest(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        # =====================================================================
        # STEP 2: Split head and body at the blank line
        # =====================================================================
        #
        #   GET / HTTP/1.1\r\n
        #   Host: example.com\r\n
        #   \r\n                    <-- header_end points here
        #   username=alice          <-- tail starts 4 bytes later
        #
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            head, tail = data, b""
        else:
            head, tail = data[:header_end], data[header_end + 4:]

        lines = head.decode("utf-8", errors="replace").split("\r\n")

        # =====================================================================
        # STEP 3: Request line
        # =====================================================================
        method, path, query_params, version = self._parse_request_line(lines[0])

        # =====================================================================
        # STEP 4: Headers
        # =====================================================================
        headers = self._parse_headers(lines[1:])

        # =====================================================================
        # STEP 5: Body
        # =====================================================================
        body = self._extract_body(headers, tail)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Optional[Dict[str, str]], str]:
        """
        Parse "METHOD SP TARGET SP VERSION".

        Returns:
            Tuple of (method, path, query_params, version)

        Raises:
            MalformedRequest: If the line is malformed
        """
        tokens = line.split(" ")
        if len(tokens) != 3 or not all(tokens):
            raise MalformedRequest(f"Invalid request line: {line!r}")

        method, target, version = tokens

        if method not in self.VALID_METHODS:
            raise MalformedRequest(f"Invalid method: {method}", status_code=405)

        if not version.startswith("HTTP/"):
            raise MalformedRequest(f"Invalid HTTP version: {version}")

        # ---------------------------------------------------------------------
        # Split TARGET into path and query
        # ---------------------------------------------------------------------
        # "/chat?room=main&x=1" → path "/chat", query {"room": "main", "x": "1"}
        # "/chat"               → path "/chat", query None
        #
        path, sep, query_string = target.partition("?")
        query_params = self._parse_query(query_string) if sep else None

        return method, path or "/", query_params, version

    def _parse_query(self, query_string: str) -> Dict[str, str]:
        """
        Split "a=1&b=2" into {"a": "1", "b": "2"}.

        Each pair is split on the FIRST "=", so "expr=a=b" keeps "a=b" as
        the value. A bare key ("flag") maps to "". Later duplicates win.
        """
        params: Dict[str, str] = {}
        for pair in query_string.split("&"):
            if not pair:
                continue
            key, _, value = pair.partition("=")
            params[unquote_plus(key)] = unquote_plus(value)
        return params

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dictionary with lowercase keys.

        Each line is split on the first ": ". A line without one is a hard
        failure rather than being skipped: a truncated or garbled header
        block means everything after it is suspect too.

        Repeated headers are combined with ", " (RFC 7230 section 3.2.2).
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            name, sep, value = line.partition(": ")
            if not sep or not name.strip():
                raise MalformedRequest(f"Invalid header line: {line!r}")

            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    def _extract_body(self, headers: Dict[str, str], tail: bytes) -> Optional[bytes]:
        """
        Take exactly Content-Length bytes from the tail.

        Returns None when there is no Content-Length or it is zero.
        """
        raw_length = headers.get("content-length")
        if raw_length is None:
            return None

        # str.isdigit() accepts things like "²"; require plain ASCII digits
        if not (raw_length.isascii() and raw_length.isdigit()):
            raise MalformedRequest(f"Invalid Content-Length: {raw_length!r}")

        content_length = int(raw_length)
        if content_length == 0:
            return None

        if len(tail) < content_length:
            raise MalformedRequest(
                f"Incomplete body: expected {content_length} bytes, got {len(tail)}"
            )

        return tail[:content_length]


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """
    Parse an HTTP request in one call.

    Use RequestParser directly when parsing many requests with the same
    settings.
    """
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
