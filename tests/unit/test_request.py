"""
Unit tests for HTTP request parsing.
"""

import pytest

from smollchat.http.request import (
    HTTPRequest,
    RequestParser,
    MalformedRequest,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_login(self, sample_login_request: bytes):
        """Test parsing a form POST."""
        parser = RequestParser()
        request = parser.parse(sample_login_request, ("127.0.0.1", 12345))

        assert request.method == "POST"
        assert request.path == "/login"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.body == b"username=alice"
        assert request.text == "username=alice"
        assert request.content_length == 14

    def test_parse_headers(self, sample_message_request: bytes):
        """Test that every header survives with a lowercase key."""
        request = parse_request(sample_message_request)

        assert request.headers == {
            "host": "localhost:8080",
            "cookie": "username=bob",
            "content-length": "8",
        }
        assert request.host == "localhost:8080"

    def test_header_lookup_case_insensitive(self, sample_message_request: bytes):
        """Test get_header with any casing."""
        request = parse_request(sample_message_request)

        assert request.get_header("Cookie") == "username=bob"
        assert request.get_header("COOKIE") == "username=bob"
        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_header_value_keeps_colons(self):
        """Test that only the first ": " splits a header."""
        request = parse_request(
            b"GET / HTTP/1.1\r\nReferer: http://host:8080/chat\r\n\r\n"
        )
        assert request.headers["referer"] == "http://host:8080/chat"

    def test_repeated_headers_joined(self):
        """Test that repeated headers are combined with ", "."""
        request = parse_request(
            b"GET / HTTP/1.1\r\nAccept: text/html\r\nACCEPT: text/css\r\n\r\n"
        )
        assert request.headers["accept"] == "text/html, text/css"

    def test_parse_cookies(self):
        """Test Cookie header parsing."""
        request = parse_request(
            b"GET /chat HTTP/1.1\r\nCookie: username=alice; theme=dark; junk\r\n\r\n"
        )
        assert request.cookies == {"username": "alice", "theme": "dark"}

    def test_no_cookie_header(self):
        """Test cookies without a Cookie header."""
        assert parse_request(b"GET / HTTP/1.1\r\n\r\n").cookies == {}


class TestQueryString:
    """Tests for query string handling."""

    def test_query_params(self):
        """Test "?a=1&b=2"."""
        request = parse_request(b"GET /chat?a=1&b=2 HTTP/1.1\r\n\r\n")

        assert request.path == "/chat"
        assert request.query_params == {"a": "1", "b": "2"}
        assert request.get_query("a") == "1"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_no_query(self):
        """Test that a target without "?" has no query parameters at all."""
        request = parse_request(b"GET /chat HTTP/1.1\r\n\r\n")

        assert request.query_params is None
        assert request.get_query("a") is None

    def test_empty_query(self):
        """Test a bare "?"."""
        request = parse_request(b"GET /chat? HTTP/1.1\r\n\r\n")

        assert request.path == "/chat"
        assert request.query_params == {}

    def test_query_edge_cases(self):
        """Test bare keys, "=" inside values, empty pieces, percent-encoding."""
        request = parse_request(
            b"GET /x?flag&expr=a=b&&name=J%C3%BCrg+M HTTP/1.1\r\n\r\n"
        )
        assert request.query_params == {
            "flag": "",
            "expr": "a=b",
            "name": "Jürg M",
        }


class TestBody:
    """Tests for Content-Length body extraction."""

    def test_no_content_length_no_body(self):
        """Test that a body without Content-Length is ignored."""
        request = parse_request(b"POST /message HTTP/1.1\r\n\r\nhello")

        assert request.body is None
        assert request.text == ""
        assert request.content_length == 0

    def test_zero_content_length(self):
        """Test Content-Length: 0."""
        request = parse_request(b"POST /message HTTP/1.1\r\nContent-Length: 0\r\n\r\n")
        assert request.body is None

    def test_trailing_bytes_ignored(self):
        """Test that only Content-Length bytes are taken."""
        request = parse_request(
            b"POST /message HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello world"
        )
        assert request.body == b"hello"

    def test_body_with_crlf(self):
        """Test that the body may itself contain blank lines."""
        body = b"line one\r\n\r\nline two"
        request = parse_request(
            b"POST /message HTTP/1.1\r\n"
            + f"Content-Length: {len(body)}\r\n\r\n".encode()
            + body
        )
        assert request.body == body

    def test_utf8_body(self):
        """Test a non-ASCII chat message."""
        body = "héllo 👋".encode("utf-8")
        request = parse_request(
            b"POST /message HTTP/1.1\r\n"
            + f"Content-Length: {len(body)}\r\n\r\n".encode()
            + body
        )
        assert request.text == "héllo 👋"

    def test_no_blank_line(self):
        """Test a buffer without the header terminator."""
        request = parse_request(b"GET /chat HTTP/1.1\r\nHost: localhost")

        assert request.path == "/chat"
        assert request.headers == {"host": "localhost"}
        assert request.body is None


class TestMalformedRequests:
    """Tests for malformed input."""

    @pytest.mark.parametrize("raw", [
        b"",
        b"GARBAGE\r\n\r\n",
        b"GET /\r\n\r\n",
        b"GET / HTTP/1.1 extra\r\n\r\n",
        b"GET  / HTTP/1.1\r\n\r\n",
    ])
    def test_bad_request_line(self, raw: bytes):
        """Test request lines without exactly three tokens."""
        with pytest.raises(MalformedRequest) as exc_info:
            parse_request(raw)
        assert exc_info.value.status_code == 400

    def test_unknown_method(self):
        """Test that an unknown method is a 405."""
        with pytest.raises(MalformedRequest) as exc_info:
            parse_request(b"BREW /pot HTTP/1.1\r\n\r\n")
        assert exc_info.value.status_code == 405

    def test_bad_version(self):
        """Test a version that isn't HTTP/x."""
        with pytest.raises(MalformedRequest) as exc_info:
            parse_request(b"GET / FTP/1.0\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_header_without_separator(self):
        """Test a header line without ": "."""
        with pytest.raises(MalformedRequest):
            parse_request(b"GET / HTTP/1.1\r\nHost localhost\r\n\r\n")

    @pytest.mark.parametrize("value", [b"abc", b"-5", b"1.5", b"\xc2\xb2"])
    def test_bad_content_length(self, value: bytes):
        """Test Content-Length values that aren't plain digits."""
        with pytest.raises(MalformedRequest) as exc_info:
            parse_request(
                b"POST /message HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\nhi"
            )
        assert exc_info.value.status_code == 400

    def test_short_body(self):
        """Test a body shorter than Content-Length."""
        with pytest.raises(MalformedRequest):
            parse_request(b"POST /message HTTP/1.1\r\nContent-Length: 10\r\n\r\nhi")

    def test_request_too_large(self):
        """Test the size limit."""
        parser = RequestParser(max_request_size=64)
        raw = b"GET /" + b"a" * 100 + b" HTTP/1.1\r\n\r\n"

        with pytest.raises(MalformedRequest) as exc_info:
            parser.parse(raw)
        assert exc_info.value.status_code == 413


class TestHTTPRequest:
    """Tests for the HTTPRequest dataclass itself."""

    def test_defaults(self):
        """Test a bare request."""
        request = HTTPRequest(method="GET", path="/")

        assert request.version == "HTTP/1.1"
        assert request.headers == {}
        assert request.query_params is None
        assert request.body is None
        assert request.path_params == {}
        assert request.connection is None

    def test_raw_kept(self, sample_login_request: bytes):
        """Test that the original bytes are kept."""
        assert parse_request(sample_login_request).raw == sample_login_request
