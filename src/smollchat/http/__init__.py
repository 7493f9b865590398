"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

The HTTP/1.1 subset the chat server speaks, built directly on socket
bytes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       raw bytes → HTTPRequest   (RequestParser)          │
    │ response.py      HTTPResponse → raw bytes  (ResponseBuilder)        │
    │ router.py        (method, path) → handler  (Router)                 │
    │ status_codes.py  HTTPStatus enum + reason phrases                   │
    │ mime_types.py    file extension → Content-Type                      │
    └─────────────────────────────────────────────────────────────────────┘

One request per connection: no keep-alive, no chunked encoding.

=============================================================================
"""

from .status_codes import HTTPStatus, reason_phrase
from .mime_types import (
    ResourceNotFound,
    UnknownMimeType,
    get_content_type,
    get_mime_type,
)
from .request import HTTPRequest, MalformedRequest, RequestParser, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    no_content,
    see_other,
    error_response,
    bad_request,
    not_found,
    service_unavailable,
    internal_error,
)
from .router import Router, Route, RouteMatch

__all__ = [
    # Status codes
    "HTTPStatus",
    "reason_phrase",
    # MIME types
    "ResourceNotFound",
    "UnknownMimeType",
    "get_content_type",
    "get_mime_type",
    # Request
    "HTTPRequest",
    "MalformedRequest",
    "RequestParser",
    "parse_request",
    # Response
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "no_content",
    "see_other",
    "error_response",
    "bad_request",
    "not_found",
    "service_unavailable",
    "internal_error",
    # Routing
    "Router",
    "Route",
    "RouteMatch",
]
