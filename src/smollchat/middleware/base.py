"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the request handler like layers of an onion: each layer
sees the request on the way in and the response on the way out.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   LoggingMiddleware ──► ... ──► error mapping ──► Router ──► handler │
    │          ▲                                                    │      │
    │          └────────────────── response ◄───────────────────────┘      │
    └─────────────────────────────────────────────────────────────────────┘

The chat server's innermost layer turns exceptions into responses, so
every middleware sees an HTTPResponse, never an exception, for any
request that reached the router.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Wraps request dispatch: sees the request first, the response last.

    Subclasses implement __call__(request, next) and MUST call
    next(request) unless they answer the request themselves:

        class TimingHeader(Middleware):
            def __call__(self, request, next):
                start = time.time()
                response = next(request)
                response.set_header("X-Elapsed", f"{time.time() - start:.3f}")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming request
            next: The rest of the chain

        Returns:
            The response from next(), possibly modified, or a response
            of the middleware's own.
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())

        handler = pipeline.wrap(dispatch)
        response = handler(request)

    First added = outermost.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """
        Append middleware; it runs inside everything added before it.

        Returns:
            Self for method chaining
        """
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain: every middleware around handler, outermost first.

        Given [MW1, MW2] and handler, wraps in reverse so the result is
        MW1 → MW2 → handler.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        """Closure binding one middleware to the handler after it."""
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
