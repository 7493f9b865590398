"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per dispatched request, with timing.

    TEXT (Apache-like, default):

        192.168.4.31 - - [17/Oct/2026:14:02:11 +0000] "GET /new-message" 200 41 5312.08ms

    JSON (for log aggregators):

        {"request_id": "a1b2c3d4", "method": "GET", "path": "/new-message",
         "client_ip": "192.168.4.31", "status_code": 200, ...}

Long-poll requests show their full wait in duration_ms, so a 30 second
/new-message ending in 204 is normal, not slow.

The logger is "smollchat.access", separate from the module loggers, so it
can be silenced or redirected on its own:

    logging.getLogger("smollchat.access").setLevel(logging.WARNING)

Request bodies are never logged: they are chat messages and usernames.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("smollchat.access")


@dataclass
class RequestLog:
    """
    Structured log entry for one request.

    request_id:     Short random id, also sent back as X-Request-ID
    method:         HTTP method
    path:           Request path (no query)
    client_ip:      Client IP address
    user_agent:     User-Agent header, "-" if absent
    status_code:    Response status
    content_length: Response body size in bytes
    duration_ms:    Time spent inside the pipeline
    timestamp:      Apache-style local time
    """

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware. Add it first so it times everything.

        pipeline.add(LoggingMiddleware(log_format="json"))
        pipeline.add(LoggingMiddleware(skip_paths=["/static/style.css"]))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        """
        Args:
            log_format: "text" or "json".
            include_request_id: Add an X-Request-ID header to responses.
            log_level: Level the access lines are logged at.
            skip_paths: Exact paths not to log.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format!r}")

        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0] or "-",
            user_agent=request.get_header("user-agent") or "-",
            status_code=int(response.status),
            content_length=len(response.body) if response.body is not None else 0,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
