"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates between raw bytes on the socket and the objects the pipeline
works with.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes → HTTPRequest (frozen, lower-cased headers)  │
    │ response.py      HTTPResponse, FileStream, ResponseBuilder, helpers │
    │ headers.py       Headers: ordered, case-insensitive mapping         │
    │ status_codes.py  HTTPStatus with reason phrases                     │
    │ mime_types.py    extension → Content-Type                           │
    └─────────────────────────────────────────────────────────────────────┘

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\\r\\n            HTTP/1.1 200 OK\\r\\n
    Header: Value\\r\\n                 Header: Value\\r\\n
    \\r\\n                              \\r\\n
    [body]                            [body]

=============================================================================
"""

from .headers import Headers
from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    FileStream,
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    text_response,
    ok,                  # 200 OK
    no_content,          # 204 No Content
    redirect,            # 301/302 Redirect
    forbidden,           # 403 Forbidden
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
)
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type, register_mime_type

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Responses
    "Headers",
    "FileStream",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "text_response",
    "ok",
    "no_content",
    "redirect",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "get_content_type",
    "register_mime_type",
]
