"""
=============================================================================
HTTP REQUEST MODEL AND PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into immutable HTTPRequest objects
(RFC 7230 message syntax).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /docs/guide%20v2.html?lang=en HTTP/1.1\r\n                   │
    │    ─┬─ ──────────┬────────── ───┬─── ────┬───                       │
    │   Method        Path          Query    Version                      │
    │                   │                                                  │
    │        decoded → "/docs/guide v2.html"                              │
    │                                                                      │
    │    Host: localhost:8080\r\n                                         │
    │    Accept-Encoding: br, gzip\r\n                                    │
    │    Origin: https://app.example.com\r\n                              │
    │    \r\n                                   ← end of headers          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT THE PARSER DOES NOT DO
=============================================================================

The parser does not judge paths. "/../etc/passwd" parses fine and reaches
the pipeline, where the path guard answers 403 and logs a security
warning. Rejecting it here with a 400 would hide traversal attempts from
the security log.

=============================================================================
"""

import re
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, quote, unquote, urlsplit

from ..errors import HTTPError


class HTTPParseError(HTTPError):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to return to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method token
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    status_code = 400

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code)


@dataclass(frozen=True)
class HTTPRequest:
    """
    An HTTP request as seen by the pipeline. Immutable once received.

    Attributes:
        method:         Upper-case method token ("GET", "HEAD", ...).
        path:           Percent-decoded path WITHOUT the query string, exactly
                        as the client sent it (not normalized, so "/docs/"
                        keeps its trailing slash).
        query:          Raw query string without the "?", or "".
        raw_path:       The path still percent-encoded, as it was on the
                        request line. Defaults to the encoded form of path.
        scheme:         "http" or "https".
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Read-only mapping with lower-cased names.
        body:           Raw body bytes.
        client_address: (ip, port) of the peer.
        cancel_event:   Set by the server when the request should stop
                        (shutdown, client gone). Streams check it.
    """

    method: str
    path: str = "/"
    query: str = ""
    raw_path: str = ""
    scheme: str = "http"
    version: str = "HTTP/1.1"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: Tuple[str, int] = ("", 0)
    cancel_event: Optional[threading.Event] = field(
        default=None, compare=False, repr=False
    )

    def __post_init__(self):
        # Frozen: normalize through object.__setattr__
        object.__setattr__(self, "method", self.method.upper())
        if not self.raw_path:
            object.__setattr__(self, "raw_path", quote(self.path))
        object.__setattr__(
            self,
            "headers",
            MappingProxyType({k.lower(): v for k, v in dict(self.headers).items()}),
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def url(self) -> str:
        """
        Encoded path plus "?query" when there is one. Used as the cache key.

        Built from raw_path so that "/a%3Fb" and "/a?b" stay different URLs.
        """
        return f"{self.raw_path}?{self.query}" if self.query else self.raw_path

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @property
    def query_params(self) -> Dict[str, List[str]]:
        """Parsed query string: "?a=1&a=2" → {"a": ["1", "2"]}."""
        return parse_qs(self.query, keep_blank_values=True)

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection unless "Connection: close";
        HTTP/1.0 closes it unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter, or default."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw Request Bytes
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Size check              too large → HTTPParseError(413)      │
        │  2. Find \\r\\n\\r\\n            missing  → HTTPParseError(400)      │
        │  3. Request line            METHOD SP TARGET SP VERSION          │
        │                             invalid  → HTTPParseError(400/405/505)│
        │  4. Headers                 "Name: Value", lower-cased names     │
        │  5. Body                    exactly Content-Length bytes         │
        │  6. Scheme                  connection scheme, or a trusted      │
        │                             X-Forwarded-Proto                    │
        └───────────────────────────────────────────────────────────────────┘
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "OPTIONS",
        "POST",
        "PUT",
        "PATCH",
        "DELETE",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(
        self,
        max_request_size: int = 10 * 1024 * 1024,
        trust_forwarded_proto: bool = False,
    ):
        """
        Args:
            max_request_size: Larger requests are rejected with 413.
            trust_forwarded_proto: Take the scheme from X-Forwarded-Proto.
                                   Only enable behind a TLS-terminating proxy.
        """
        self.max_request_size = max_request_size
        self.trust_forwarded_proto = trust_forwarded_proto

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
        scheme: str = "http",
        cancel_event: Optional[threading.Event] = None,
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes", status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, raw_path, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers['content-length']!r}"
            )
        if content_length < 0 or len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        if self.trust_forwarded_proto:
            forwarded = headers.get("x-forwarded-proto", "").split(",")[0].strip()
            if forwarded.lower() in ("http", "https"):
                scheme = forwarded.lower()

        return HTTPRequest(
            method=method,
            path=path,
            query=query,
            raw_path=raw_path,
            scheme=scheme,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
            cancel_event=cancel_event,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str, str, str]:
        """
        Split "METHOD SP TARGET SP VERSION" into
        (method, raw_path, path, query, version).

        An origin-form target is split on its first "?", so "//docs/a" stays
        a path rather than a host. The path is percent-decoded AFTER the
        split, so "%3F" never starts a query. The query is kept raw.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}", status_code=505
            )

        target = target.partition("#")[0]
        if target.startswith(("http://", "https://")):
            # absolute-form (RFC 7230 §5.3.2): drop scheme and authority
            parts = urlsplit(target)
            raw_path, query = parts.path, parts.query
        else:
            raw_path, _, query = target.partition("?")

        raw_path = raw_path or "/"
        path = unquote(raw_path)
        if "\x00" in path:
            raise HTTPParseError("Invalid path: contains NUL byte")

        return method, raw_path, path, query, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-cased names.

        Obsolete line folding is joined onto the previous header, and
        repeated headers are combined with ", " (RFC 7230 §3.2.2).
        Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
