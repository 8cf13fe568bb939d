"""
=============================================================================
MIDDLEWARE
=============================================================================

Every stage is a callable (request, next) → response. Stages run in
registration order on the way in and in reverse order on the way out:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   request ─► Logging ─► Security ─► CORS ─► Compression ─► Cache ─┐ │
    │                                                                    ▼ │
    │                                                   StaticFileHandler  │
    │                                                                    │ │
    │   response ◄─ Logging ◄─ Security ◄─ CORS ◄─ Compression ◄─ Cache ◄┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A stage that returns without calling next() short-circuits everything
below it: CORS answers preflights, the cache answers hits.

=============================================================================
AVAILABLE MIDDLEWARE
=============================================================================

LoggingMiddleware:
    Access log line per request, X-Request-ID on every response.

SecurityHeadersMiddleware:
    X-XSS-Protection, X-Content-Type-Options, X-Frame-Options and HSTS
    on HTTPS responses.

CORSMiddleware:
    Preflight answers and Access-Control-* headers.

CompressionMiddleware:
    Brotli or gzip for text types, negotiated from Accept-Encoding.

CacheMiddleware:
    In-memory LRU with a TTL for successful GET responses.

=============================================================================
"""

from .base import FunctionMiddleware, Middleware, MiddlewareChain, function_middleware
from .logging import LoggingMiddleware
from .security import HSTSConfig, SecurityConfig, SecurityHeadersMiddleware
from .cors import CORSConfig, CORSMiddleware
from .compression import CompressionConfig, CompressionMiddleware
from .cache import CacheConfig, CacheMiddleware, ResponseCache

__all__ = [
    # Chain
    "Middleware",
    "FunctionMiddleware",
    "function_middleware",
    "MiddlewareChain",

    # Stages
    "LoggingMiddleware",
    "SecurityHeadersMiddleware",
    "CORSMiddleware",
    "CompressionMiddleware",
    "CacheMiddleware",
    "ResponseCache",

    # Stage configuration
    "HSTSConfig",
    "SecurityConfig",
    "CORSConfig",
    "CompressionConfig",
    "CacheConfig",
]
