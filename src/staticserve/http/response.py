"""
=============================================================================
HTTP RESPONSE MODEL
=============================================================================

An HTTPResponse travels back out through the middleware chain, and any
stage may inspect or replace it. Its body is one of two things:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        RESPONSE BODIES                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   bytes        Buffered. Error pages, listings, compressed output,  │
    │                cache hits.                                          │
    │                                                                      │
    │   FileStream   An open file read in 64 KiB chunks. Only the static  │
    │                responder produces these, for GET on a regular file. │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SINGLE CONSUMPTION
=============================================================================

A body can be read ONCE. A stream is exhausted after reading, and for a
buffered body the same rule applies so that code written against one kind
works for the other:

    response.read()        → b"..."
    response.read()        → BodyConsumedError

A stage that needs the body AND needs to pass the response on (the cache)
takes a copy first:

    snapshot = response.clone()    # buffers a stream, copies headers
    store(snapshot)
    return response                # original still readable

=============================================================================
SERIALIZATION
=============================================================================

    HTTP/1.1 200 OK\\r\\n
    Content-Type: text/html; charset=utf-8\\r\\n
    Content-Length: 1234\\r\\n
    Date: Sat, 17 Oct 2026 12:00:00 GMT\\r\\n    ← added when missing
    Server: staticserve/1.0\\r\\n                 ← added when missing
    \\r\\n
    <body bytes or streamed chunks>

=============================================================================
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Dict, Iterator, List, Optional, Union

from ..errors import BodyConsumedError, RequestCancelled

from .headers import Headers
from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "staticserve/1.0"


class FileStream:
    """
    Single-use chunked reader over an open binary file.

    The file is closed when iteration ends, fails or is cancelled.
    If a cancel event is given it is checked before every chunk and
    RequestCancelled is raised once it is set.
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        fileobj: BinaryIO,
        size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        self._file = fileobj
        self.size = size
        self.cancel_event = cancel_event
        self.chunk_size = chunk_size
        self._started = False

    @classmethod
    def open(
        cls,
        path: str,
        size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "FileStream":
        """Open a file for streaming. OSError propagates to the caller."""
        return cls(open(path, "rb"), size=size, cancel_event=cancel_event)

    @property
    def consumed(self) -> bool:
        return self._started

    def __iter__(self) -> Iterator[bytes]:
        if self._started:
            raise BodyConsumedError("File stream has already been read")
        self._started = True
        return self._chunks()

    def _chunks(self) -> Iterator[bytes]:
        try:
            while True:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    raise RequestCancelled("Request cancelled while streaming file")
                chunk = self._file.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self._file.close()

    def read(self) -> bytes:
        """Read the whole remaining stream into memory."""
        return b"".join(self)

    def close(self) -> None:
        self._started = True
        self._file.close()


Body = Union[bytes, FileStream]


@dataclass
class HTTPResponse:
    """
    An HTTP response: status, case-insensitive headers, body.

    Build one directly, with ResponseBuilder, or with the helpers at the
    bottom of this module (ok, not_found, redirect, ...).
    """

    status: int = HTTPStatus.OK
    headers: Headers = field(default_factory=Headers)
    body: Body = b""
    version: str = "HTTP/1.1"
    _body_used: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        try:
            self.status = HTTPStatus(self.status)
        except ValueError:
            self.status = int(self.status)
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if self.body is None:
            self.body = b""
        elif isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        phrase = self.status.phrase if isinstance(self.status, HTTPStatus) else ""
        return f"{self.version} {int(self.status)} {phrase}".rstrip()

    @property
    def is_streaming(self) -> bool:
        return isinstance(self.body, FileStream)

    @property
    def body_used(self) -> bool:
        if self.is_streaming:
            return self._body_used or self.body.consumed
        return self._body_used

    @property
    def ok(self) -> bool:
        """True for 2xx."""
        return 200 <= self.status < 300

    # =========================================================================
    # BODY ACCESS
    # =========================================================================

    def _check_unused(self) -> None:
        if self.body_used:
            raise BodyConsumedError("Response body has already been consumed")

    def buffer(self) -> bytes:
        """
        Turn a streamed body into bytes in place, without consuming it.

        After this the response is a plain buffered response and can be
        read or cloned as usual.
        """
        self._check_unused()
        if self.is_streaming:
            self.body = self.body.read()
        return self.body

    def read(self) -> bytes:
        """Read the whole body. Allowed once."""
        data = self.buffer()
        self._body_used = True
        return data

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body in chunks, consuming it. Used by the socket writer."""
        self._check_unused()
        self._body_used = True
        if self.is_streaming:
            yield from self.body
        elif self.body:
            yield self.body

    def clone(self) -> "HTTPResponse":
        """
        Independent copy with its own headers and body.

        A streamed body is buffered first, so the original stays readable.
        """
        data = self.buffer()
        return HTTPResponse(
            status=self.status,
            headers=self.headers.copy(),
            body=data,
            version=self.version,
        )

    def close(self) -> None:
        """Release a stream that will never be read (errors, HEAD, shutdown)."""
        if self.is_streaming and not self.body.consumed:
            self.body.close()
        self._body_used = True

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def serialize_head(
        self,
        server_name: str = DEFAULT_SERVER_NAME,
        include_length: bool = True,
    ) -> bytes:
        """
        Status line and headers, terminated by the blank line.

        Date and Server are added when missing. Content-Length is added for
        buffered bodies unless include_length is False (HEAD responses,
        where the length describes a body that is not sent).
        """
        headers = self.headers.copy()
        if include_length and "Content-Length" not in headers and not self.is_streaming:
            headers["Content-Length"] = str(len(self.body))
        if "Date" not in headers:
            headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "Server" not in headers:
            headers["Server"] = server_name

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        lines.append("")
        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Head plus the whole body. Consumes the body."""
        return self.serialize_head(server_name) + b"".join(self.iter_body())


class ResponseBuilder:
    """
    Fluent builder for responses.

        response = (
            ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("Cache-Control", "no-cache")
            .html("<h1>Index of /</h1>")
            .build()
        )
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers = Headers()
        self._body: Body = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set a buffered body and its Content-Length."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        self._headers["Content-Length"] = str(len(body))
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        return self.content_type(content_type).body(text)

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def stream(self, stream: FileStream) -> "ResponseBuilder":
        """Set a streamed body. Content-Length comes from the stream size."""
        self._body = stream
        if stream.size is not None:
            self._headers["Content-Length"] = str(stream.size)
        return self

    def empty(self) -> "ResponseBuilder":
        """No body, Content-Length: 0."""
        return self.body(b"")

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers.copy(),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(value: Union[datetime, float, None] = None) -> str:
    """
    Format a datetime or POSIX timestamp as an RFC 7231 HTTP-date.

        >>> format_http_date(0)
        'Thu, 01 Jan 1970 00:00:00 GMT'

    HTTP dates are always GMT. None means now.
    """
    if value is None:
        value = time.time()
    if isinstance(value, datetime):
        dt = value.astimezone(timezone.utc) if value.tzinfo else value
    else:
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# Error bodies are the bare status phrase. Details go to the log, never to
# the client.

def text_response(status: int, text: Optional[str] = None) -> HTTPResponse:
    """Plain-text response; the body defaults to the status phrase."""
    if text is None:
        text = HTTPStatus(status).phrase
    return ResponseBuilder().status(status).text(text).build()


def ok(body: Union[str, bytes] = b"", content_type: str = "text/plain; charset=utf-8") -> HTTPResponse:
    return ResponseBuilder().content_type(content_type).body(body).build()


def no_content() -> HTTPResponse:
    """204 with no body and no Content-Length."""
    return HTTPResponse(status=HTTPStatus.NO_CONTENT)


def redirect(location: str, permanent: bool = True) -> HTTPResponse:
    """301 (or 302) with Location and an empty body."""
    status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
    return (
        ResponseBuilder()
        .status(status)
        .header("Location", location)
        .content_type("text/plain; charset=utf-8")
        .empty()
        .build()
    )


def forbidden() -> HTTPResponse:
    return text_response(HTTPStatus.FORBIDDEN)


def not_found() -> HTTPResponse:
    return text_response(HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed: Optional[List[str]] = None) -> HTTPResponse:
    """405 with the Allow header."""
    response = text_response(HTTPStatus.METHOD_NOT_ALLOWED)
    response.headers["Allow"] = ", ".join(allowed or ["GET", "HEAD"])
    return response


def internal_error() -> HTTPResponse:
    return text_response(HTTPStatus.INTERNAL_SERVER_ERROR)
