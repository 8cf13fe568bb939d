"""
=============================================================================
STATICSERVE - Static File HTTP Server
=============================================================================

Serves a directory over HTTP/1.1 through a pipeline of middleware stages:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. PATH GUARD         URL paths never resolve outside root_dir    │
    │   2. STATIC RESPONDER   files, index.html, SPA fallback, listings,  │
    │                         ETag / Last-Modified, HEAD                   │
    │   3. RESPONSE CACHE     LRU + TTL, one lock, snapshot copies        │
    │   4. COMPRESSION        Brotli / gzip by Accept-Encoding            │
    │   5. CORS + SECURITY    preflights, Access-Control-*, HSTS & co.    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    staticserve/
    ├── __init__.py          # Package exports
    ├── __main__.py          # CLI (python -m staticserve)
    ├── server.py            # StaticServer, build_pipeline
    ├── config.py            # ServerConfig
    ├── errors.py            # Exception hierarchy
    ├── paths.py             # Path resolution and containment
    ├── core/                # Sockets, TLS, connections, thread pool
    ├── http/                # Request, response, headers, status, MIME
    ├── handlers/            # StaticFileHandler, directory listings
    └── middleware/          # Chain and the built-in stages

=============================================================================
QUICK START
=============================================================================

    from staticserve import StaticServer, ServerConfig
    from staticserve.middleware import CacheConfig, CORSConfig

    config = ServerConfig(
        root_dir="./dist",
        enable_spa=True,
        cache=CacheConfig(ttl=60),
        cors=CORSConfig(allow_origins=["https://app.example.com"]),
    )
    StaticServer(config).run()

Or from a shell:

    python -m staticserve ./dist --spa --cache-ttl 60

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import StaticServer, build_pipeline

__all__ = ["StaticServer", "ServerConfig", "build_pipeline", "__version__"]
