"""
=============================================================================
CORS (Cross-Origin Resource Sharing) MIDDLEWARE
=============================================================================

Lets browser pages on other origins fetch the files this server serves.

    ┌───────────────────────────────────────────────────────────────────┐
    │                    SAME-ORIGIN POLICY                             │
    ├───────────────────────────────────────────────────────────────────┤
    │                                                                    │
    │   Page from: https://app.example.com                              │
    │                                                                    │
    │   ✅ https://app.example.com/data.json     (same origin)          │
    │   ❌ https://cdn.example.com/data.json     (different host)       │
    │   ❌ http://app.example.com/data.json      (different scheme)     │
    │                                                                    │
    │   Origin = scheme + host + port                                   │
    │                                                                    │
    └───────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST FLOW
=============================================================================

    PREFLIGHT (answered here, never reaches the responder):

    ┌─────────┐  OPTIONS /fonts/inter.woff2            ┌─────────┐
    │ Browser │  Origin: https://app.com               │ Server  │
    │         │  Access-Control-Request-Headers: X-Foo │         │
    │         │───────────────────────────────────────▶│         │
    │         │  204 No Content                        │         │
    │         │  Access-Control-Allow-Origin: *        │         │
    │         │  Access-Control-Allow-Methods: GET, …  │         │
    │         │  Access-Control-Allow-Headers: X-Foo   │         │
    │         │  Access-Control-Max-Age: 86400         │         │
    │         │◀───────────────────────────────────────│         │
    └─────────┘                                        └─────────┘

    ACTUAL REQUEST: the downstream response gets Allow-Origin,
    Allow-Credentials and Expose-Headers added on the way out.

=============================================================================
ORIGIN MATCHING
=============================================================================

    allow_origins = ["*"]
        credentials off  → Access-Control-Allow-Origin: *
        credentials on   → echo the request Origin (browsers reject "*"
                           with credentials), plus Vary: Origin
    allow_origins = ["https://a.com", "https://b.com"]
        Origin listed    → echo it, plus Vary: Origin
        Origin unlisted  → no CORS headers at all; the browser blocks it

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, no_content


@dataclass
class CORSConfig:
    """
    CORS configuration.

        CORSConfig()                                    # any origin
        CORSConfig(
            allow_origins=["https://myapp.com"],
            allow_credentials=True,
            expose_headers=["ETag"],
        )

    An empty allow_headers echoes whatever the preflight asks for.
    """

    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(
        default_factory=lambda: ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
    )
    allow_headers: List[str] = field(default_factory=list)
    expose_headers: List[str] = field(default_factory=list)
    allow_credentials: bool = False
    max_age: int = 86400

    def validate(self) -> None:
        if not self.allow_origins:
            raise ValueError("CORS allow_origins must not be empty")
        if self.max_age < 0:
            raise ValueError(f"CORS max_age must be >= 0, got {self.max_age}")


class CORSMiddleware(Middleware):
    """
    Answers preflights and decorates responses with CORS headers.

    Header values are joined once here; per request only the origin
    decision is made.
    """

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()
        self.config.validate()

        self._wildcard = "*" in self.config.allow_origins
        self._allowed_origins = frozenset(self.config.allow_origins)
        self._methods = ", ".join(self.config.allow_methods)
        self._allow_headers = ", ".join(self.config.allow_headers)
        self._expose_headers = ", ".join(self.config.expose_headers)
        self._max_age = str(self.config.max_age)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        origin = request.get_header("origin")

        if request.method == "OPTIONS":
            return self._preflight(request, origin)

        response = next(request)
        self._add_cors_headers(response, origin)
        return response

    def allowed_origin(self, origin: str) -> Optional[str]:
        """The Access-Control-Allow-Origin value for origin, or None."""
        if self._wildcard:
            if self.config.allow_credentials and origin:
                return origin
            return "*"
        if origin in self._allowed_origins:
            return origin
        return None

    def _preflight(self, request: HTTPRequest, origin: str) -> HTTPResponse:
        response = no_content()
        if not self._add_cors_headers(response, origin):
            return response

        response.headers["Access-Control-Allow-Methods"] = self._methods

        requested_headers = request.get_header("access-control-request-headers")
        if self._allow_headers:
            response.headers["Access-Control-Allow-Headers"] = self._allow_headers
        elif requested_headers:
            response.headers["Access-Control-Allow-Headers"] = requested_headers

        response.headers["Access-Control-Max-Age"] = self._max_age
        return response

    def _add_cors_headers(self, response: HTTPResponse, origin: str) -> bool:
        """Add the common CORS headers. Returns False if the origin is refused."""
        allowed = self.allowed_origin(origin)
        if allowed is None:
            return False

        response.headers["Access-Control-Allow-Origin"] = allowed
        if self.config.allow_credentials:
            response.headers["Access-Control-Allow-Credentials"] = "true"
        if self._expose_headers:
            response.headers["Access-Control-Expose-Headers"] = self._expose_headers
        if allowed != "*":
            response.headers.add_vary("Origin")
        return True
