"""
=============================================================================
STATIC FILE SERVER
=============================================================================

Ties the networking core to the request pipeline.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          StaticServer                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──Connection──► ThreadPool ──► _process_connection    │
    │   (accept, TLS)                (workers)       (keep-alive loop)     │
    │                                                      │               │
    │                                         RequestParser│               │
    │                                                      ▼               │
    │   handle(request) ── the error boundary ──► MiddlewareChain          │
    │                                                                      │
    │      Logging → SecurityHeaders → CORS → Compression → Cache          │
    │              → [server.use(...) stages] → StaticFileHandler          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts (and for HTTPS, wraps) the client socket
    2. The Connection is queued on the ThreadPool; a full queue gets 503
    3. A worker reads and parses the request (400/405/413/505 on failure,
       408 when the first request never arrives)
    4. handle() runs the middleware chain down to the StaticFileHandler
    5. The head is written, then the body chunk by chunk
    6. Keep-alive: loop for the next request, or close

Only handle() turns unexpected exceptions into a 500. Stages and the
responder let them propagate so that, for instance, a failed file read
never leaves a half-built entry in the cache.

=============================================================================
SHUTDOWN
=============================================================================

shutdown() (or SIGINT/SIGTERM) stops the accept loop, sets the shared
cancel event so in-flight file streams stop at their next chunk, and waits
for the thread pool to drain.

=============================================================================
"""

import logging
import threading
from typing import Callable, Optional, Union

from . import __version__
from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .errors import RequestCancelled
from .handlers import StaticFileHandler
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    internal_error,
    method_not_allowed,
    text_response,
)
from .middleware import (
    CacheMiddleware,
    CompressionMiddleware,
    CORSMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewareChain,
    SecurityHeadersMiddleware,
)
from .middleware.base import MiddlewareFunc


logger = logging.getLogger(__name__)


# Bodies these statuses never have, so no Content-Length: 0 either.
_BODYLESS_STATUSES = (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED)


def build_pipeline(config: ServerConfig) -> MiddlewareChain:
    """
    The default stages for a configuration, outermost first.

        Logging → SecurityHeaders → CORS → Compression → Cache

    Stages whose config is None (or a cache with ttl 0) are left out.
    Compression wraps the cache so that cached bodies stay identity
    encoded and every client gets its own negotiated encoding.
    """
    chain = MiddlewareChain()
    chain.use(LoggingMiddleware(
        log_format=config.log_format,
        include_request_id=True,
    ))
    if config.security is not None:
        chain.use(SecurityHeadersMiddleware(config.security))
    if config.cors is not None:
        chain.use(CORSMiddleware(config.cors))
    if config.compression is not None:
        chain.use(CompressionMiddleware(config.compression))
    if config.cache.enabled:
        chain.use(CacheMiddleware(config.cache))
    return chain


class StaticServer:
    """
    Multi-threaded HTTP/1.1 static file server.

        server = StaticServer(ServerConfig(root_dir="./dist", enable_spa=True))
        server.run()                      # blocks until Ctrl+C

    Extra stages run between the built-in ones and the file handler:

        @function_middleware
        def no_store(request, next):
            response = next(request)
            response.headers["Cache-Control"] = "no-store"
            return response

        server.use(no_store)

    handle() can also be called directly, without sockets:

        response = server.handle(request)
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(
            max_request_size=self.config.max_request_size,
            trust_forwarded_proto=self.config.trust_forwarded_proto,
        )

        self.responder = StaticFileHandler(
            root_dir=self.config.root_dir,
            index_file=self.config.index_file,
            enable_spa=self.config.enable_spa,
            enable_directory_listing=self.config.enable_directory_listing,
            show_hidden=self.config.show_hidden,
            follow_symlinks=self.config.allow_symlink_escape,
        )
        self.chain = build_pipeline(self.config)
        self._handler: Callable[[HTTPRequest], HTTPResponse] = self.chain.wrap(self.responder)

        self._cancel_event = threading.Event()
        self._running = False

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> "StaticServer":
        """Append a stage just before the file handler. Returns self."""
        self.chain.use(middleware)
        return self

    @property
    def address(self):
        """The bound (host, port), available once the server is listening."""
        return self._socket_server.address

    @property
    def url(self) -> str:
        host, port = self.address
        return f"{self._socket_server.scheme}://{host}:{port}"

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run one request through the pipeline.

        This is the only place an unexpected exception becomes a response:
        it is logged with its traceback and answered with an opaque 500.
        RequestCancelled propagates to the caller, which has nothing left
        to send it to.
        """
        try:
            return self._handler(request)
        except RequestCancelled:
            raise
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method} {request.path}: {e}")
            return internal_error()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start serving (blocking) until shutdown() or SIGINT/SIGTERM.

        Args:
            host: Override config.host.
            port: Override config.port.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()
        self._cancel_event.clear()
        self._thread_pool.start()
        self._running = True

        logger.info(
            f"staticserve {__version__} serving {self.config.root_dir} "
            f"({len(self.chain)} stages, "
            f"{self.config.min_workers}-{self.config.max_workers} workers)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is bound. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self):
        """Ask a running server to stop. Returns immediately."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        logging.basicConfig(
            level=self.config.log_level_number,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("staticserve").setLevel(self.config.log_level_number)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._cancel_event.set()
        self._thread_pool.shutdown(wait=True, timeout=5.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread: queue the connection or answer 503."""
        submitted = self._thread_pool.submit(
            self._process_connection, args=(conn,), block=False
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (runs on a worker thread)."""
        with conn:
            if not conn.handshake():
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    return
                except ValueError as e:
                    logger.warning(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    return

                if raw_request is None:
                    return

                try:
                    request = self._parser.parse(
                        raw_request,
                        conn.address,
                        scheme=conn.scheme,
                        cancel_event=self._cancel_event,
                    )
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                    self._send_error(conn, e.status_code)
                    return

                conn.state = conn.state.PROCESSING
                try:
                    response = self.handle(request)
                except RequestCancelled:
                    logger.debug(f"[{conn.id}] Request cancelled during shutdown")
                    return

                keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                try:
                    if not self._send(conn, request, response):
                        return
                except RequestCancelled:
                    logger.debug(f"[{conn.id}] Response cancelled during shutdown")
                    return

                if not keep_alive:
                    return
                conn.set_keep_alive()

    def _send(self, conn: Connection, request: HTTPRequest, response: HTTPResponse) -> bool:
        """Write head and body. HEAD and bodyless statuses send the head only."""
        head_only = request.method == "HEAD" or response.status in _BODYLESS_STATUSES
        head = response.serialize_head(
            self.config.server_name,
            include_length=not head_only,
        )

        if head_only:
            response.close()
            return conn.send_response(head)

        try:
            if not conn.send_response(head):
                return False
            return conn.send_chunks(response.iter_body())
        finally:
            response.close()

    def _send_error(self, conn: Connection, status: int):
        """
        Answer a request that never reached the pipeline, then let the
        caller close the connection.
        """
        if status == HTTPStatus.METHOD_NOT_ALLOWED:
            response = method_not_allowed()
        else:
            response = text_response(status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))
