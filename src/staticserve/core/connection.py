"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket (plain TCP or TLS) with buffered request
reading and streamed response writing.

TCP delivers a byte stream, not messages. One recv() may return half a
request line, or two pipelined requests at once:

    recv() → b"GET /app.js HTTP/1.1\\r\\nHo"
    recv() → b"st: x\\r\\n\\r\\nGET /app.css HTTP/1.1\\r\\n..."

So bytes are accumulated in a buffer until the blank line that ends the
headers arrives, then Content-Length more bytes for the body. Anything
past that stays in the buffer for the next read_request() call.

=============================================================================
RESPONSE WRITING
=============================================================================

File bodies are never loaded into memory whole. The head goes out first,
then the body chunk by chunk as the FileStream yields it:

    send_response(head)          "HTTP/1.1 200 OK\\r\\n...\\r\\n\\r\\n"
    send_chunks(iter_body())     64 KiB, 64 KiB, 64 KiB, ... , 12 KiB

A client that disconnects halfway through just stops the loop.

=============================================================================
"""

import logging
import socket
import ssl
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used in logs."""

    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket (an ssl.SSLSocket when serving HTTPS).
        address: Client's (ip, port) tuple.
        scheme: "http" or "https", copied onto every parsed request.
        id: Short identifier for log lines.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple
    scheme: str = "http"

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    def handshake(self) -> bool:
        """
        Complete the TLS handshake on an HTTPS connection.

        A no-op for plain sockets. Returns False if the handshake failed
        (plain HTTP sent to the TLS port, unknown CA, timeout).
        """
        if not isinstance(self.socket, ssl.SSLSocket):
            return True
        try:
            self.socket.do_handshake()
            return True
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake failed: {e}")
            return False

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        The first request waits up to `timeout`; later requests on a
        keep-alive connection wait only `keep_alive_timeout`.

        Returns:
            The request bytes, or None if the client closed the connection
            or went quiet between keep-alive requests.

        Raises:
            TimeoutError: The first request did not arrive in time.
            ValueError: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # the parser reports the short body
                self._buffer += chunk

            # Leftover bytes belong to the next pipelined request.
            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """
        Content-Length from raw header bytes, 0 if absent or malformed.

        A malformed value is left for RequestParser to reject with a 400.
        """
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(int(line.split(":", 1)[1].strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send bytes with sendall().

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()
        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def send_chunks(self, chunks: Iterable[bytes]) -> bool:
        """Send each chunk in turn, stopping at the first failed send."""
        for chunk in chunks:
            if chunk and not self.send_response(chunk):
                return False
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: shutdown(SHUT_WR) to send FIN, drain whatever
        the client still sends, then release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
