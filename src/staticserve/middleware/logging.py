"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Times every request and writes one access-log line per response on the
"staticserve.access" logger.

    TEXT (combined-style):
    127.0.0.1 - - [17/Oct/2026:12:00:00 +0000] "GET /app.js?v=3" 200 31872 1.42ms

    JSON:
    {"request_id": "5f2c9a1e", "method": "GET", "path": "/app.js",
     "query": "v=3", "client_ip": "127.0.0.1", "status_code": 200, ...}

The access logger is separate from the module loggers so it can be routed
on its own:

    logging.getLogger("staticserve.access").addHandler(file_handler)

Each response carries an X-Request-ID. A client-supplied X-Request-ID is
reused so traces can be followed across a proxy.

Register it FIRST so that it times the whole pipeline and sees responses
produced by short-circuiting stages (CORS preflights, cache hits).

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from .base import Middleware, NextHandler
from ..errors import RequestCancelled
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("staticserve.access")


@dataclass
class RequestLog:
    """One access-log record."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


def response_length(response: HTTPResponse) -> int:
    """Body size as sent: Content-Length if set, else the buffered length."""
    length = response.headers.get("Content-Length")
    if length is not None and length.isdigit():
        return int(length)
    if response.is_streaming:
        return response.body.size or 0
    return len(response.body)


class LoggingMiddleware(Middleware):
    """
    Access logging.

        chain.use(LoggingMiddleware(log_format="json"))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            log_format: "text" or "json".
            include_request_id: Add X-Request-ID to responses.
            log_level: Level access lines are logged at.
            skip_paths: Exact paths not to log.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header("x-request-id") or uuid.uuid4().hex[:8]
        start_time = time.time()

        try:
            response = next(request)
        except RequestCancelled:
            logger.debug(f"Request cancelled: {request.method} {request.path}")
            raise
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            client_ip=request.client_address[0],
            user_agent=request.get_header("user-agent", "-"),
            status_code=int(response.status),
            content_length=response_length(response),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return response
