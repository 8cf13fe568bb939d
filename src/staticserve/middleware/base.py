"""
=============================================================================
MIDDLEWARE CHAIN
=============================================================================

A middleware is anything callable as middleware(request, next) that
returns a response. It may call next(request) once to continue, or not at
all to answer on its own (short-circuit).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        THE ONION MODEL                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ────────────────────────────────────────────────►         │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐     │
    │   │ Logging  │───►│   CORS   │───►│  Cache   │───►│ Static   │     │
    │   │          │    │          │    │          │    │ responder│     │
    │   └────┬─────┘    └────┬─────┘    └────┬─────┘    └────┬─────┘     │
    │        ▼               ▼               ▼               ▼            │
    │   [before]        [before]        [before]         [exec]          │
    │   start timer     OPTIONS? → 204  hit? → clone     stat + serve    │
    │        ▲               ▲               ▲               │            │
    │   [after]         [after]         [after]              │            │
    │   access log      add ACAO        store clone   ◄──────┘            │
    │                                                                      │
    │   ◄──────────────────────────────────────────────── Response        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Entry runs in registration order; the response unwinds in reverse.

=============================================================================
ONE CHAIN, MANY THREADS
=============================================================================

The chain is built once at startup and shared by every worker thread.
execute() keeps its position in a local variable of that call, so
concurrent requests never see each other's progress:

    chain.execute(request, responder)
        index = 0                  ← per call
        next(req) → chain[0](req, next)
                      → next(req) → chain[1](req, next)
                                      → ...
                                      → responder(req)

Calling next() twice from one middleware is a bug in that middleware and
is not detected.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The continuation handed to each middleware, and the shape of the
# terminal handler.
NextHandler = Callable[[HTTPRequest], HTTPResponse]
MiddlewareFunc = Callable[[HTTPRequest, NextHandler], HTTPResponse]


class Middleware(ABC):
    """
    Base class for class-based middleware.

        class AddHeader(Middleware):
            def __call__(self, request, next):
                # ═══ before: may short-circuit by returning early ═══
                response = next(request)
                # ═══ after: may modify or replace the response ═══
                response.headers["X-Processed-By"] = "AddHeader"
                return response

    Instances are shared across threads. Keep configuration on self and
    per-request state in locals.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """Process the request, calling next(request) at most once."""

    @property
    def name(self) -> str:
        """Name used in logs."""
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Adapts a plain function to the Middleware interface.

        def add_header(request, next):
            response = next(request)
            response.headers["X-Custom"] = "value"
            return response

        chain.use(add_header)      # wrapped automatically
    """

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", repr(func))

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)


class MiddlewareChain:
    """
    Ordered middleware plus a terminal handler supplied per execution.

        chain = MiddlewareChain()
        chain.use(LoggingMiddleware()).use(CORSMiddleware())
        response = chain.execute(request, responder.handle)

        # or bind the terminal handler once:
        handler = chain.wrap(responder.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> "MiddlewareChain":
        """
        Append a middleware. Plain functions are wrapped in FunctionMiddleware.

        Returns self for chaining.
        """
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def execute(self, request: HTTPRequest, terminal: NextHandler) -> HTTPResponse:
        """
        Run the request through every middleware, then terminal.

        Exceptions from any stage propagate to the caller unchanged.
        """
        stages = tuple(self._middleware)
        index = 0

        def next_handler(req: HTTPRequest) -> HTTPResponse:
            nonlocal index
            if index >= len(stages):
                return terminal(req)
            middleware = stages[index]
            index += 1
            return middleware(req, next_handler)

        return next_handler(request)

    def wrap(self, terminal: NextHandler) -> NextHandler:
        """Bind a terminal handler, returning a request → response callable."""

        def handler(request: HTTPRequest) -> HTTPResponse:
            return self.execute(request, terminal)

        return handler

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
