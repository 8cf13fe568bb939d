"""
=============================================================================
COMPRESSION MIDDLEWARE
=============================================================================

Compresses text responses with Brotli or gzip, whichever the client
accepts, preferring Brotli.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     CONTENT NEGOTIATION                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  Accept-Encoding: gzip, deflate, br    →  br                        │
    │  Accept-Encoding: gzip                 →  gzip                      │
    │  Accept-Encoding: br;q=0, gzip         →  gzip   (q=0 = refused)    │
    │  Accept-Encoding: *                    →  br                        │
    │  Accept-Encoding: identity / missing   →  unchanged                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Client                          Server
      │  GET /app.js                  │
      │  Accept-Encoding: br, gzip    │
      │ ─────────────────────────────►│
      │                               │  120 KB of JavaScript
      │  200 OK                       │  brotli → 31 KB
      │  Content-Encoding: br         │
      │  Vary: Accept-Encoding        │
      │ ◄─────────────────────────────│

The compressed body is buffered, so the response leaves without a
Content-Length from this stage; the socket writer measures it.

Only text-like types are compressed. PNG, JPEG, fonts and archives are
already compressed and only get bigger.

=============================================================================
"""

import gzip
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

import brotli

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


DEFAULT_COMPRESSIBLE_TYPES: Set[str] = {
    "text/plain",
    "text/html",
    "text/css",
    "text/javascript",
    "text/xml",
    "application/javascript",
    "application/json",
    "application/xml",
    "image/svg+xml",
}


@dataclass
class CompressionConfig:
    """
    level:              Brotli quality (0-11). gzip uses the same number
                        clamped to 1-9.
    compressible_types: Base MIME types eligible for compression.
    min_size:           Bodies smaller than this are left alone.
    """

    level: int = 6
    compressible_types: Set[str] = field(
        default_factory=lambda: set(DEFAULT_COMPRESSIBLE_TYPES)
    )
    min_size: int = 0

    def validate(self) -> None:
        if not 0 <= self.level <= 11:
            raise ValueError(f"Compression level must be 0-11, got {self.level}")
        if self.min_size < 0:
            raise ValueError(f"Compression min_size must be >= 0, got {self.min_size}")


def parse_accept_encoding(header: str) -> Dict[str, float]:
    """
    Parse Accept-Encoding into {coding: q}.

        >>> parse_accept_encoding("gzip;q=0.5, br")
        {'gzip': 0.5, 'br': 1.0}

    Malformed q-values count as 0.
    """
    codings: Dict[str, float] = {}
    for part in header.split(","):
        coding, _, params = part.partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value.strip())
                except ValueError:
                    q = 0.0
        codings[coding] = q
    return codings


def _accepts(codings: Dict[str, float], coding: str) -> bool:
    if coding in codings:
        return codings[coding] > 0
    return codings.get("*", 0) > 0


class CompressionMiddleware(Middleware):
    """
    Response compression.

        chain.use(CompressionMiddleware(CompressionConfig(level=9)))

    Register it OUTSIDE the cache so cached bodies stay uncompressed and
    each client gets its own negotiated encoding.
    """

    def __init__(self, config: Optional[CompressionConfig] = None):
        self.config = config or CompressionConfig()
        self.config.validate()
        self.gzip_level = min(max(self.config.level, 1), 9)

    def select_encoding(self, accept_encoding: str) -> Optional[str]:
        """"br", "gzip" or None for an Accept-Encoding value."""
        codings = parse_accept_encoding(accept_encoding)
        if _accepts(codings, "br"):
            return "br"
        if _accepts(codings, "gzip"):
            return "gzip"
        return None

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if not self._should_compress(response):
            return response

        encoding = self.select_encoding(request.get_header("accept-encoding"))
        if encoding is None:
            return response

        headers = response.headers.copy()
        headers["Content-Encoding"] = encoding
        headers.add_vary("Accept-Encoding")
        headers.pop("Content-Length", None)

        if request.method == "HEAD":
            response.close()
            return HTTPResponse(status=response.status, headers=headers, body=b"")

        original = response.read()
        compressed = self.compress(original, encoding)
        logger.debug(
            f"Compressed {request.path} with {encoding}: "
            f"{len(original)} -> {len(compressed)} bytes"
        )
        return HTTPResponse(status=response.status, headers=headers, body=compressed)

    def compress(self, data: bytes, encoding: str) -> bytes:
        if encoding == "br":
            return brotli.compress(data, quality=self.config.level)
        return gzip.compress(data, compresslevel=self.gzip_level)

    def _should_compress(self, response: HTTPResponse) -> bool:
        """Compressible type, not already encoded, and a non-empty body."""
        if "Content-Encoding" in response.headers:
            return False

        content_type = response.headers.get("Content-Type", "")
        base_type = content_type.split(";")[0].strip().lower()
        if base_type not in self.config.compressible_types:
            return False

        size = self._body_size(response)
        if size == 0:
            return False
        return size is None or size >= self.config.min_size

    @staticmethod
    def _body_size(response: HTTPResponse) -> Optional[int]:
        length = response.headers.get("Content-Length")
        if length is not None:
            try:
                return int(length)
            except ValueError:
                return None
        if response.is_streaming:
            return response.body.size
        return len(response.body)
