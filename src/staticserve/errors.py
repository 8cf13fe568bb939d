"""
=============================================================================
PIPELINE ERRORS
=============================================================================

Exceptions raised inside the request pipeline.

Errors that map to an HTTP status carry a `status_code`, the same way the
request parser's HTTPParseError does. The responder converts them into
responses; anything else is an "upstream failure" and is only caught at
the outermost boundary in StaticServer.handle(), which logs it and answers
with an opaque 500.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR TAXONOMY                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTPParseError     400-505   malformed request (http.request)     │
    │   PathTraversalError     403   resolved path escapes the root       │
    │   RequestCancelled        -    client gone or server shutting down  │
    │   BodyConsumedError       -    single-use body read twice (bug)     │
    │   (anything else)        500   logged with detail, opaque to client │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from typing import Optional


class StaticServeError(Exception):
    """Base class for all errors raised by staticserve."""


class HTTPError(StaticServeError):
    """
    An error with a definite HTTP status.

    The message is for logs. Clients only ever see the status phrase.
    """

    status_code: int = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class PathTraversalError(HTTPError):
    """Raised when a resolved path falls outside the served root."""

    status_code = 403

    def __init__(self, url_path: str, resolved: str = ""):
        super().__init__(f"Path escapes root: {url_path!r} -> {resolved!r}")
        self.url_path = url_path
        self.resolved = resolved


class BodyConsumedError(StaticServeError):
    """
    Raised when a single-consumption response body is read a second time.

    Call HTTPResponse.clone() before reading if the body is needed twice.
    """


class RequestCancelled(StaticServeError):
    """Raised when a request's cancel event fires while its body is being read."""
