"""
=============================================================================
SOCKET SERVER
=============================================================================

Owns the listening socket and the accept loop. Every accepted socket is
wrapped in a Connection and handed to a callback; the HTTP layer decides
what to do with it.

    socket() → setsockopt() → bind() → listen() → accept() loop
                                                      │
                                                      ▼
                                      connection_handler(Connection)

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   Rebind right after a restart while old connections
                   are still in TIME_WAIT.
    SO_REUSEPORT   Several processes may share the port (not on Windows).
    TCP_NODELAY    Small responses (304s, redirects) go out at once
                   instead of waiting on Nagle's algorithm.
    timeout 1s     accept() wakes up every second so shutdown() is
                   noticed promptly.

=============================================================================
HTTPS
=============================================================================

When config.certfile is set, an ssl.SSLContext is loaded once at start()
and every accepted socket is wrapped server-side. The handshake is
deferred to the worker thread (do_handshake_on_connect=False), so a slow
or bogus TLS client cannot stall the accept loop:

    accept loop:  wrap_socket(client, server_side=True,
                              do_handshake_on_connect=False)
    worker:       conn.handshake() → read_request() → ...

Connections built this way carry scheme "https", which is what
request.is_secure and the security-headers stage look at.

=============================================================================
"""

import logging
import signal
import socket
import ssl
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection
from ..config import ServerConfig


logger = logging.getLogger(__name__)


def create_ssl_context(certfile: str, keyfile: Optional[str] = None) -> ssl.SSLContext:
    """Server-side TLS context from a PEM certificate (and key)."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    return context


class SocketServer:
    """
    TCP (optionally TLS) listener.

        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()

    start() installs SIGINT/SIGTERM handlers when it runs on the main
    thread; from any other thread, call shutdown() to stop it.
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._ssl_context: Optional[ssl.SSLContext] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}
        self._bound_address: Optional[Tuple[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheme(self) -> str:
        return "https" if self.config.use_tls else "http"

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once bound to port 0."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass  # not available on this platform
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        """Turn SIGTERM (docker stop, systemd) and SIGINT (Ctrl+C) into shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and run the accept loop until shutdown().

        Raises:
            OSError: The address could not be bound.
            ssl.SSLError: The certificate or key could not be loaded.
        """
        if self.config.use_tls:
            self._ssl_context = create_ssl_context(self.config.certfile, self.config.keyfile)

        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()
        self._ready.set()

        host, port = self._bound_address
        logger.info(f"Server listening on {self.scheme}://{host}:{port}")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            if self._ssl_context is not None:
                try:
                    client_socket = self._ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"TLS wrap failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address,
                scheme=self.scheme,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call more than once and from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
