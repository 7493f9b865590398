"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

The outbound half of the message framer: HTTPResponse holds a response and
serializes it to bytes, ResponseBuilder assembles one step by step.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 303 See Other\\r\\n                 ← STATUS LINE          │
    │  Location: http://192.168.4.28:8080/chat\\r\\n ← HEADERS              │
    │  Set-Cookie: username=alice\\r\\n                                     │
    │  Content-Length: 0\\r\\n                                              │
    │  \\r\\n                                       ← BLANK LINE           │
    │                                              ← BODY (optional)      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHO SETS CONTENT-LENGTH?
=============================================================================

HTTPResponse never adds headers on its own: to_bytes() writes exactly what
is in .headers, which keeps serialization deterministic (same fields, same
bytes). Whoever puts a body on a response also sets Content-Length.

ResponseBuilder's body helpers (text, html, json, file, body, empty) do
that for you, so handlers that use the builder can't forget it.

=============================================================================
THE BUILDER
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.SEE_OTHER)
        .header("Location", "/chat")
        .cookie("username=alice")
        .empty()
        .build())

Every setter returns the builder. Anything left unset is filled in by
build():

    version  → "HTTP/1.1"
    status   → 404
    reason   → "Not Found" (or the standard phrase for an explicit status)
    headers  → {}
    body     → None

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus, reason_phrase
from .mime_types import get_content_type


DEFAULT_VERSION = "HTTP/1.1"
DEFAULT_STATUS = 404
DEFAULT_REASON = "Not Found"


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    A plain data container. Use ResponseBuilder for a more convenient way
    to construct one.

    =========================================================================
    RESPONSE LIFECYCLE
    =========================================================================

        Handler returns          to_bytes()              Socket sends
        HTTPResponse    ─────►   serializes    ─────►    raw bytes

    =========================================================================
    """

    version: str = DEFAULT_VERSION
    status: int = DEFAULT_STATUS
    reason: str = DEFAULT_REASON
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 204 No Content"
        """
        return f"{self.version} {int(self.status)} {self.reason}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a response header, overwriting any previous value.

        Returns self for method chaining.
        """
        self.headers[name] = value
        return self

    def to_bytes(self) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

        =====================================================================
        SERIALIZATION FORMAT
        =====================================================================

            {version} {status} {reason}\\r\\n
            {key}: {value}\\r\\n          ← one per header, dict order
            \\r\\n
            {body}                        ← only if body is not None

        =====================================================================

        Returns:
            Complete HTTP response as bytes ready for socket.sendall()
        """
        lines = [self.status_line]

        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")

        # Empty line separates headers from body
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        if self.body is None:
            return header_bytes
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each setter records one field and returns the builder. build() fills
    in defaults for anything left unset (see module docstring), so
    ResponseBuilder().build() is a bare "HTTP/1.1 404 Not Found".

    Usage:

        # Long-poll delivery
        ResponseBuilder().status(HTTPStatus.OK).json(message.to_dict()).build()

        # Login redirect
        (ResponseBuilder()
            .status(HTTPStatus.SEE_OTHER)
            .header("Location", "/chat")
            .cookie(request.text)
            .empty()
            .build())
    """

    def __init__(self):
        """Initialize a builder with every field unset."""
        self._version: Optional[str] = None
        self._status: Optional[int] = None
        self._reason: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._body: Optional[bytes] = None

    # =========================================================================
    # STATUS LINE METHODS
    # =========================================================================

    def version(self, version: str) -> "ResponseBuilder":
        """Set the HTTP version echoed in the status line."""
        self._version = version
        return self

    def status(self, status: int, reason: Optional[str] = None) -> "ResponseBuilder":
        """
        Set the HTTP status code.

        Args:
            status: HTTPStatus member or plain integer
            reason: Reason phrase; defaults to the standard phrase at build()

        Returns:
            Self for method chaining
        """
        self._status = int(status)
        self._reason = reason
        return self

    def reason(self, reason: str) -> "ResponseBuilder":
        """Override the reason phrase."""
        self._reason = reason
        return self

    # =========================================================================
    # HEADER METHODS
    # =========================================================================

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """
        Set a single response header.

        Setting the same name twice keeps the last value.
        """
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        """Set multiple headers at once."""
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        """Set the Content-Type header."""
        return self.header("Content-Type", content_type)

    def content_length(self, length: int) -> "ResponseBuilder":
        """Set the Content-Length header."""
        return self.header("Content-Length", str(length))

    def cookie(self, raw_cookie: str) -> "ResponseBuilder":
        """
        Set the Set-Cookie header to a raw cookie string.

        The value goes on the wire as-is: no escaping, no validation, no
        attributes added. Callers that want Path=, Max-Age= and so on must
        include them in raw_cookie.
        """
        return self.header("Set-Cookie", raw_cookie)

    # =========================================================================
    # BODY METHODS
    # =========================================================================
    #
    # All of these set Content-Length to match the body.
    #

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """
        Set the response body (raw bytes or string).

        Strings are encoded as UTF-8.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self.content_length(len(body))

    def empty(self) -> "ResponseBuilder":
        """No body, but an explicit Content-Length: 0."""
        self._body = None
        return self.content_length(0)

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        """Set a plain text body."""
        return self.body(text).content_type(content_type)

    def html(self, html: str) -> "ResponseBuilder":
        """Set an HTML body."""
        return self.body(html).content_type("text/html; charset=utf-8")

    def json(self, data: Any) -> "ResponseBuilder":
        """
        Set a compact JSON body.

        ensure_ascii=False keeps non-ASCII chat text readable on the wire;
        the body is UTF-8 either way.
        """
        payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        return self.body(payload).content_type("application/json")

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        """
        Set a file body with Content-Type resolved from the extension.

        Raises:
            UnknownMimeType: If the extension isn't one we serve.
        """
        self._headers["Content-Type"] = get_content_type(filename)
        return self.body(content)

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        """
        Build the HTTPResponse, filling defaults for unset fields.
        """
        status = self._status if self._status is not None else DEFAULT_STATUS

        if self._reason is not None:
            reason = self._reason
        elif self._status is None:
            reason = DEFAULT_REASON
        else:
            reason = reason_phrase(status)

        return HTTPResponse(
            version=self._version or DEFAULT_VERSION,
            status=status,
            reason=reason,
            headers=dict(self._headers),
            body=self._body,
        )

    def to_bytes(self) -> bytes:
        """Build and serialize in one step."""
        return self.build().to_bytes()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the responses the chat server sends most. All of them
# carry a Content-Length, so they are safe to write straight to a socket.
#
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    Create a 200 OK response.

    dict/list → JSON, str → text (or content_type), bytes → raw.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def no_content() -> HTTPResponse:
    """Create a 204 No Content response."""
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).empty().build()


def see_other(location: str) -> HTTPResponse:
    """
    Create a 303 See Other redirect.

    303 makes the browser follow up with a GET, which is what a form POST
    wants ("Post/Redirect/Get").
    """
    return (ResponseBuilder()
        .status(HTTPStatus.SEE_OTHER)
        .header("Location", location)
        .empty()
        .build())


def error_response(status: int) -> HTTPResponse:
    """An empty-bodied response with the given (error) status."""
    return ResponseBuilder().status(status).empty().build()


def bad_request() -> HTTPResponse:
    """Create a 400 Bad Request response."""
    return error_response(HTTPStatus.BAD_REQUEST)


def not_found() -> HTTPResponse:
    """Create a 404 Not Found response with an empty body."""
    return error_response(HTTPStatus.NOT_FOUND)


def service_unavailable() -> HTTPResponse:
    """Create a 503 Service Unavailable response."""
    return error_response(HTTPStatus.SERVICE_UNAVAILABLE)


def internal_error() -> HTTPResponse:
    """Create a 500 Internal Server Error response. Never leaks details."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
