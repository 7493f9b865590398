"""
=============================================================================
CHAT ROUTES
=============================================================================

The six routes the browser UI talks to:

    GET  /              login page (index.html, room name substituted)
    GET  /chat          chat page  (chat.html, room name substituted)
    GET  /new-message   long-poll: 200 + JSON when a message arrives,
                        204 when long_poll_timeout passes first
    GET  /static/*path  stylesheet, script, images
    POST /login         body "username=alice": 303 to /chat, body echoed
                        back verbatim as Set-Cookie
    POST /message       body is the message text, sender taken from the
                        username cookie: 204, message delivered

=============================================================================
A CHAT EXCHANGE ON THE WIRE
=============================================================================

    Browser A                          Server                     Browser B
        │  GET /new-message               │                            │
        │ ──────────────────────────────► │ register slot, wait        │
        │                                 │                            │
        │                                 │  POST /message "hi there"  │
        │                                 │ ◄───────────────────────── │
        │                                 │  Cookie: username=bob      │
        │                                 │ ─────────────────────────► │
        │                                 │  204 No Content            │
        │  200 {"username":"bob",         │                            │
        │       "message":"hi there"}     │                            │
        │ ◄────────────────────────────── │                            │
        │  GET /new-message  (again)      │                            │
        │ ──────────────────────────────► │                            │

Handlers raise instead of building error responses: MalformedRequest for
a missing body or cookie, ResourceNotFound for a missing file,
ListenerCapacityExceeded past the long-poll cap. ChatServer turns those
into 400 / 404 / 503.

=============================================================================
"""

import logging
from typing import Callable, Optional
from urllib.parse import unquote_plus

from ..chat import ChatMessage, ListenerRegistry
from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest, MalformedRequest
from ..http.response import HTTPResponse, ResponseBuilder, no_content, see_other
from ..http.router import Router
from ..http.status_codes import HTTPStatus
from .static import render_template


logger = logging.getLogger(__name__)


# name → bytes, raising ResourceNotFound for anything missing
ResourceLookup = Callable[[str], bytes]

USERNAME_COOKIE = "username"


def username_from_cookie(request: HTTPRequest) -> str:
    """
    The sender's name, from the cookie set at login.

    Raises:
        MalformedRequest: No username cookie (or an empty one).
    """
    username = request.cookies.get(USERNAME_COOKIE, "")
    if not username:
        raise MalformedRequest("Missing username cookie")
    return unquote_plus(username)


def username_from_login(body: str) -> str:
    """
    Pull the display name out of a login form body.

        "username=alice"     → "alice"
        "username=J%C3%BCrg" → "Jürg"
        "alice"              → "alice"   (no field name: whole body)
    """
    name, sep, value = body.partition("=")
    return unquote_plus(value if sep else name)


class ChatHandlers:
    """
    Request handlers for the chat UI, bound to one room.

    Usage:

        handlers = ChatHandlers(
            registry=ListenerRegistry(),
            lookup=StaticResources(config.static_dir),
            room_name="Room",
            long_poll_timeout=30.0,
        )
        handlers.register(router)
    """

    def __init__(
        self,
        registry: ListenerRegistry,
        lookup: ResourceLookup,
        room_name: str = "Room",
        long_poll_timeout: Optional[float] = 30.0,
    ):
        """
        Args:
            registry: Where long-polls wait and messages are delivered.
            lookup: Resource lookup callback for pages and static files.
            room_name: Substituted into the "{{}}" marker of each page.
            long_poll_timeout: Longest a /new-message request waits.
        """
        self.registry = registry
        self.lookup = lookup
        self.room_name = room_name
        self.long_poll_timeout = long_poll_timeout

    def register(self, router: Router) -> Router:
        """Add every chat route to a router."""
        router.add_route("/", self.index, method="GET")
        router.add_route("/chat", self.chat_page, method="GET")
        router.add_route("/new-message", self.new_message, method="GET")
        router.add_route("/static/*path", self.static_file, method="GET")
        router.add_route("/login", self.login, method="POST")
        router.add_route("/message", self.message, method="POST")
        return router

    # =========================================================================
    # PAGES
    # =========================================================================

    def _page(self, name: str) -> HTTPResponse:
        template = self.lookup(name).decode("utf-8", errors="replace")
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .html(render_template(template, self.room_name))
            .build())

    def index(self, request: HTTPRequest) -> HTTPResponse:
        """GET / → login page."""
        return self._page("index.html")

    def chat_page(self, request: HTTPRequest) -> HTTPResponse:
        """GET /chat → chat page."""
        return self._page("chat.html")

    def static_file(self, request: HTTPRequest) -> HTTPResponse:
        """
        GET /static/<file>

        HTML files are templates here too, rendered like / and /chat.

        Raises:
            UnknownMimeType: Extension not in the MIME table (checked first).
            ResourceNotFound: No such file.
        """
        filename = request.path_params.get("path", "")
        content_type = get_content_type(filename)
        if filename.lower().endswith(".html"):
            return self._page(filename)

        content = self.lookup(filename)

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(content_type)
            .body(content)
            .build())

    # =========================================================================
    # LOGIN
    # =========================================================================

    def login(self, request: HTTPRequest) -> HTTPResponse:
        """
        POST /login with body "username=<name>".

        The raw body becomes the cookie, so the browser sends
        "Cookie: username=<name>" on every later request.

        Raises:
            MalformedRequest: Empty body.
        """
        raw_cookie = request.text.strip()
        if not raw_cookie:
            raise MalformedRequest("Missing login body")

        host = request.host
        location = f"http://{host}/chat" if host else "/chat"

        logger.info(f"User {username_from_login(raw_cookie)} has joined the chat.")

        response = see_other(location)
        response.set_header("Content-Type", "text/html; charset=utf-8")
        response.set_header("Set-Cookie", raw_cookie)
        return response

    # =========================================================================
    # MESSAGING
    # =========================================================================

    def new_message(self, request: HTTPRequest) -> HTTPResponse:
        """
        GET /new-message: wait for the next posted message.

        Returns:
            200 with {"username": ..., "message": ...}, or 204 when the
            wait timed out, the client went away, or the server is
            shutting down.

        Raises:
            ListenerCapacityExceeded: Too many long-polls already waiting.
        """
        conn = request.connection
        is_connected = conn.peer_connected if conn is not None else None

        message = self.registry.listen(
            timeout=self.long_poll_timeout,
            client_address=request.client_address,
            is_connected=is_connected,
        )

        if message is None:
            return no_content()

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json(message.to_dict())
            .build())

    def message(self, request: HTTPRequest) -> HTTPResponse:
        """
        POST /message: deliver the body as a chat message.

        Always 204, whether or not anyone was listening.

        Raises:
            MalformedRequest: Missing body or username cookie.
        """
        if request.body is None:
            raise MalformedRequest("Missing message body")

        chat_message = ChatMessage(
            username=username_from_cookie(request),
            text=request.text,
        )

        delivered = self.registry.deliver(chat_message)
        logger.debug(
            f"Message from {chat_message.username} delivered to {delivered} listener(s)"
        )

        return no_content()
