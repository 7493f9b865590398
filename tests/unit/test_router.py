"""
Unit tests for request routing.
"""

import pytest

from smollchat.http.request import HTTPRequest
from smollchat.http.response import ok
from smollchat.http.router import Router
from smollchat.http.mime_types import ResourceNotFound


def make_request(method: str, path: str) -> HTTPRequest:
    return HTTPRequest(method=method, path=path)


class TestRouterMatching:
    """Tests for route matching."""

    def test_exact_match(self):
        router = Router()
        router.add_route("/chat", lambda r: ok("chat"), method="GET")

        match = router.match("GET", "/chat")
        assert match is not None
        assert match.route.path == "/chat"
        assert match.params == {}

    def test_root_route(self):
        """Test that "/" only matches the root."""
        router = Router()
        router.add_route("/", lambda r: ok("index"), method="GET")

        assert router.match("GET", "/") is not None
        assert router.match("GET", "/chat") is None

    def test_no_prefix_match(self):
        """Test that routes are anchored at both ends."""
        router = Router()
        router.add_route("/chat", lambda r: ok(), method="GET")

        assert router.match("GET", "/chat/extra") is None
        assert router.match("GET", "/chatroom") is None

    def test_method_filter(self):
        router = Router()
        router.add_route("/message", lambda r: ok(), method="post")

        assert router.match("POST", "/message") is not None
        assert router.match("GET", "/message") is None

    def test_any_method(self):
        router = Router()
        router.add_route("/ping", lambda r: ok())

        assert router.match("GET", "/ping") is not None
        assert router.match("DELETE", "/ping") is not None

    def test_wildcard(self):
        """Test that a wildcard captures the rest of the path."""
        router = Router()
        router.add_route("/static/*path", lambda r: ok(), method="GET")

        match = router.match("GET", "/static/img/logo.png")
        assert match.params == {"path": "img/logo.png"}

    def test_wildcard_empty(self):
        router = Router()
        router.add_route("/static/*path", lambda r: ok(), method="GET")

        assert router.match("GET", "/static/").params == {"path": ""}

    def test_first_registered_wins(self):
        router = Router()
        router.add_route("/static/*path", lambda r: ok("first"), name="first")
        router.add_route("/static/app.js", lambda r: ok("second"), name="second")

        assert router.match("GET", "/static/app.js").route.name == "first"

    def test_route_name_defaults_to_handler(self):
        def chat_page(request):
            return ok()

        router = Router()
        route = router.add_route("/chat", chat_page)
        assert route.name == "chat_page"


class TestRouterHandle:
    """Tests for dispatching to handlers."""

    def test_handle_calls_handler(self):
        router = Router()
        router.add_route("/chat", lambda r: ok("chat page"), method="GET")

        response = router.handle(make_request("GET", "/chat"))
        assert response.body == b"chat page"

    def test_handle_sets_path_params(self):
        router = Router()
        router.add_route(
            "/static/*path",
            lambda r: ok(r.path_params["path"]),
            method="GET",
        )

        request = make_request("GET", "/static/chat.js")
        response = router.handle(request)

        assert request.path_params == {"path": "chat.js"}
        assert response.body == b"chat.js"

    def test_handle_no_match(self):
        router = Router()
        router.add_route("/chat", lambda r: ok(), method="GET")

        with pytest.raises(ResourceNotFound):
            router.handle(make_request("GET", "/nowhere"))

    def test_handle_wrong_method(self):
        router = Router()
        router.add_route("/login", lambda r: ok(), method="POST")

        with pytest.raises(ResourceNotFound):
            router.handle(make_request("GET", "/login"))


class TestRouterDecorators:
    """Tests for decorator registration."""

    def test_get_and_post(self):
        router = Router()

        @router.get("/chat")
        def chat_page(request):
            return ok("page")

        @router.post("/message")
        def message(request):
            return ok("posted")

        assert [(r.method, r.path) for r in router.routes] == [
            ("GET", "/chat"),
            ("POST", "/message"),
        ]
        assert chat_page(None).body == b"page"

    def test_routes_is_a_copy(self):
        router = Router()
        router.add_route("/", lambda r: ok())

        router.routes.clear()
        assert len(router.routes) == 1
