"""
=============================================================================
HTTP ROUTER
=============================================================================

Maps (method, path) pairs to handler functions.

The chat server has six routes, five of them fixed strings and one prefix
route for static files:

    GET  /              → index page
    GET  /chat          → chat page
    GET  /new-message   → long-poll
    GET  /static/*path  → static files ("*path" captures the rest)
    POST /login         → set username cookie, redirect
    POST /message       → deliver a message to listeners

Anything else raises ResourceNotFound, which the server answers with a
404 and an empty body. A known path with the wrong method is also a plain
404: the chat protocol has no use for 405 + Allow.

=============================================================================
PATTERN SYNTAX
=============================================================================

    /chat           static segment, exact match
    /static/*path   wildcard, captures everything after /static/ into
                    request.path_params["path"]

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List
import re

from .request import HTTPRequest
from .response import HTTPResponse
from .mime_types import ResourceNotFound


# Handler: takes a request, returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """
    A registered route: URL pattern + method + handler.

        Route(
            path="/static/*path",
            method="GET",
            handler=static_file,
            _pattern=^/static/(?P<path>.*)$,
            _param_names=["path"],
        )
    """

    path: str                        # URL pattern
    method: Optional[str]            # HTTP method (None = any method)
    handler: Handler                 # Handler function to call
    name: Optional[str] = None       # Route name, for logs

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """Result of a successful match: the route plus captured parameters."""

    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router.

    Routes are registered with decorators:

        router = Router()

        @router.get("/chat")
        def chat_page(request):
            ...

        @router.get("/static/*path")
        def static_file(request):
            filename = request.path_params["path"]
            ...

    Matching is first-registered, first-matched.
    """

    def __init__(self):
        self._routes: List[Route] = []

    @property
    def routes(self) -> List[Route]:
        """Registered routes, in match order."""
        return list(self._routes)

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern ("/chat" or "/static/*path")
            handler: Function taking a request and returning a response
            method: HTTP method (None for any method)
            name: Optional route name

        Returns:
            The registered Route
        """
        pattern, param_names = self._compile_pattern(path)

        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            name=name or getattr(handler, "__name__", None),
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a path pattern into an anchored regex.

            "/static/*path"  →  ^/static/(?P<path>.*)$
            "/"              →  ^/$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith("*"):
                # Wildcard consumes the rest of the path, slashes included
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break

            regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")  # root route

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the first route matching method and path.

        Returns:
            RouteMatch if found, None otherwise
        """
        for route in self._routes:
            if route.method and route.method != method.upper():
                continue

            match = route._pattern.match(path)
            if match:
                return RouteMatch(route=route, params=match.groupdict())

        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

        Raises:
            ResourceNotFound: If no route matches.
        """
        match = self.match(request.method, request.path)
        if match is None:
            raise ResourceNotFound(f"No route matches {request.method} {request.path}")

        request.path_params = match.params
        return match.route.handler(request)

    # =========================================================================
    # DECORATOR-STYLE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for registering routes.

            @router.route("/chat", method="GET")
            def chat_page(request):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name)
            return handler  # unchanged, so decorators can stack

        return decorator

    def get(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route(path, "GET", name)

    def post(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a POST route."""
        return self.route(path, "POST", name)
