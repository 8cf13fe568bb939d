"""
Unit tests for Connection reads and writes, over a socket pair.
"""

import socket

import pytest

from staticserve.core import Connection, ConnectionState


@pytest.fixture
def pair():
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    server_side.close()
    client_side.close()


def make_connection(sock, **kwargs) -> Connection:
    kwargs.setdefault("timeout", 2.0)
    return Connection(socket=sock, address=("127.0.0.1", 50000), **kwargs)


class TestReadRequest:
    """Tests for Connection.read_request."""

    def test_reads_headers(self, pair):
        """Test a request without a body."""
        server_side, client_side = pair
        raw = b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"
        client_side.sendall(raw)

        conn = make_connection(server_side)
        assert conn.read_request() == raw
        assert conn.requests_handled == 1

    def test_reads_body(self, pair):
        """Test that Content-Length bytes are read after the headers."""
        server_side, client_side = pair
        raw = b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"
        client_side.sendall(raw)

        assert make_connection(server_side).read_request() == raw

    def test_pipelined_requests(self, pair):
        """Test that bytes past one request are kept for the next."""
        server_side, client_side = pair
        first = b"GET /a HTTP/1.1\r\n\r\n"
        second = b"GET /b HTTP/1.1\r\n\r\n"
        client_side.sendall(first + second)

        conn = make_connection(server_side)
        assert conn.read_request() == first
        assert conn.read_request() == second

    def test_client_closed(self, pair):
        """Test that EOF before a request returns None."""
        server_side, client_side = pair
        client_side.shutdown(socket.SHUT_WR)

        assert make_connection(server_side).read_request() is None

    def test_too_large(self, pair):
        """Test that oversized headers raise ValueError."""
        server_side, client_side = pair
        client_side.sendall(b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 200)

        conn = make_connection(server_side, max_request_size=64)
        with pytest.raises(ValueError):
            conn.read_request()

    def test_declared_length_too_large(self, pair):
        """Test that a Content-Length over the limit is refused up front."""
        server_side, client_side = pair
        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: 999999\r\n\r\n")

        conn = make_connection(server_side, max_request_size=1024)
        with pytest.raises(ValueError):
            conn.read_request()

    def test_first_request_timeout(self, pair):
        """Test that a silent client raises TimeoutError."""
        server_side, _ = pair
        conn = make_connection(server_side, timeout=0.2)

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_keep_alive_timeout(self, pair):
        """Test that an idle keep-alive connection returns None."""
        server_side, client_side = pair
        client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")

        conn = make_connection(server_side, keep_alive_timeout=0.2)
        assert conn.read_request() is not None
        conn.set_keep_alive()
        assert conn.read_request() is None


class TestSend:
    """Tests for sending."""

    def test_send_response_and_chunks(self, pair):
        """Test that head and chunks arrive in order."""
        server_side, client_side = pair
        conn = make_connection(server_side)

        assert conn.send_response(b"HEAD\r\n\r\n")
        assert conn.send_chunks([b"one", b"two"])
        client_side.settimeout(2.0)
        assert client_side.recv(1024) == b"HEAD\r\n\r\nonetwo"

    def test_close(self, pair):
        """Test that close marks the connection closed."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        conn.close()

        assert conn.state == ConnectionState.CLOSED

    def test_plain_socket_handshake(self, pair):
        """Test that handshake is a no-op without TLS."""
        server_side, _ = pair
        conn = make_connection(server_side)
        assert conn.handshake()
        assert not conn.is_secure
