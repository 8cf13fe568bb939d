"""
=============================================================================
SECURITY HEADERS MIDDLEWARE
=============================================================================

Adds browser hardening headers to responses served over HTTPS.

    ┌─────────────────────────────────┬───────────────────────────────────┐
    │ Header                          │ Default                           │
    ├─────────────────────────────────┼───────────────────────────────────┤
    │ X-XSS-Protection                │ 1; mode=block                     │
    │ X-Content-Type-Options          │ nosniff                           │
    │ X-Frame-Options                 │ DENY  (or SAMEORIGIN, or off)     │
    │ Strict-Transport-Security       │ max-age=15552000; includeSubDomains│
    └─────────────────────────────────┴───────────────────────────────────┘

Plain-HTTP responses are left alone. Strict-Transport-Security in
particular is ignored by browsers over HTTP (RFC 6797 §8.1).

The header set is computed once when the middleware is built. A header
the response already carries keeps its value.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


FRAME_OPTIONS = ("DENY", "SAMEORIGIN")


@dataclass
class HSTSConfig:
    max_age: int = 15552000  # 180 days
    include_subdomains: bool = True
    preload: bool = False

    @property
    def header_value(self) -> str:
        value = f"max-age={self.max_age}"
        if self.include_subdomains:
            value += "; includeSubDomains"
        if self.preload:
            value += "; preload"
        return value


@dataclass
class SecurityConfig:
    """
    Each header can be switched off: xss_protection=False,
    no_sniff=False, frame_options=None, hsts=None.
    """

    xss_protection: bool = True
    no_sniff: bool = True
    frame_options: Optional[str] = "DENY"
    hsts: Optional[HSTSConfig] = field(default_factory=HSTSConfig)

    def validate(self) -> None:
        if self.frame_options is not None and self.frame_options not in FRAME_OPTIONS:
            raise ValueError(
                f"frame_options must be one of {FRAME_OPTIONS} or None, "
                f"got {self.frame_options!r}"
            )
        if self.hsts is not None and self.hsts.max_age < 0:
            raise ValueError(f"HSTS max_age must be >= 0, got {self.hsts.max_age}")

    def build_headers(self) -> Dict[str, str]:
        headers = {}
        if self.xss_protection:
            headers["X-XSS-Protection"] = "1; mode=block"
        if self.no_sniff:
            headers["X-Content-Type-Options"] = "nosniff"
        if self.frame_options:
            headers["X-Frame-Options"] = self.frame_options
        if self.hsts is not None:
            headers["Strict-Transport-Security"] = self.hsts.header_value
        return headers


class SecurityHeadersMiddleware(Middleware):
    """Adds the configured hardening headers to HTTPS responses."""

    def __init__(self, config: Optional[SecurityConfig] = None):
        self.config = config or SecurityConfig()
        self.config.validate()
        self.headers = self.config.build_headers()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)
        if request.is_secure:
            for name, value in self.headers.items():
                response.headers.setdefault(name, value)
        return response
