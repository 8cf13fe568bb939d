"""
Tests for StaticServer: the pipeline boundary and end-to-end over sockets.
"""

import gzip
import socket

import pytest

from staticserve import ServerConfig, StaticServer, build_pipeline
from staticserve.errors import RequestCancelled
from staticserve.http import HTTPStatus
from staticserve.middleware import (
    CacheConfig,
    CacheMiddleware,
    CompressionMiddleware,
    CORSConfig,
    CORSMiddleware,
    LoggingMiddleware,
    SecurityConfig,
    SecurityHeadersMiddleware,
)


def split_response(raw: bytes):
    """Split raw response bytes into (status, headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


class TestBuildPipeline:
    """Tests for the default stage order."""

    def test_all_stages(self, site):
        """Test order with every stage enabled."""
        config = ServerConfig(
            root_dir=str(site),
            cors=CORSConfig(),
            cache=CacheConfig(ttl=60),
            security=SecurityConfig(),
        )
        stages = [type(stage) for stage in build_pipeline(config)]

        assert stages == [
            LoggingMiddleware,
            SecurityHeadersMiddleware,
            CORSMiddleware,
            CompressionMiddleware,
            CacheMiddleware,
        ]

    def test_minimal(self, site):
        """Test that disabled stages are left out."""
        config = ServerConfig(root_dir=str(site), compression=None)
        assert [type(s) for s in build_pipeline(config)] == [LoggingMiddleware]


class TestHandle:
    """Tests for StaticServer.handle without sockets."""

    def test_serves_file(self, config, make_request):
        """Test a request through the full default pipeline."""
        response = StaticServer(config).handle(make_request("/style.css"))

        assert response.status == HTTPStatus.OK
        assert "X-Request-ID" in response.headers
        assert response.read() == b"body { margin: 0; }\n"

    def test_unexpected_error_is_500(self, config, make_request, caplog):
        """Test that stage failures become an opaque 500."""
        server = StaticServer(config)

        def broken(request, next):
            raise RuntimeError("secret detail")

        server.use(broken)
        response = server.handle(make_request("/style.css"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.read() == b"Internal Server Error"
        assert "secret detail" in caplog.text

    def test_cancellation_propagates(self, config, make_request):
        """Test that RequestCancelled is not turned into a 500."""
        server = StaticServer(config)

        def cancelled(request, next):
            raise RequestCancelled("shutdown")

        server.use(cancelled)
        with pytest.raises(RequestCancelled):
            server.handle(make_request("/"))

    def test_user_stage_runs_before_responder(self, config, make_request):
        """Test that use() stages sit between built-ins and the responder."""
        server = StaticServer(config)
        seen = []

        def spy(request, next):
            seen.append(request.path)
            response = next(request)
            response.headers["X-Spy"] = "1"
            return response

        server.use(spy)
        response = server.handle(make_request("/style.css"))

        assert seen == ["/style.css"]
        assert response.headers["X-Spy"] == "1"
        response.close()

    def test_cache_and_compression_together(self, site, make_request):
        """Test that cached bodies are compressed per request, not stored compressed."""
        config = ServerConfig(root_dir=str(site), cache=CacheConfig(ttl=60))
        server = StaticServer(config)

        gz = server.handle(make_request("/app.js", headers={"Accept-Encoding": "gzip"}))
        plain = server.handle(make_request("/app.js"))

        expected = (site / "app.js").read_bytes()
        assert gzip.decompress(gz.read()) == expected
        assert "Content-Encoding" not in plain.headers
        assert plain.read() == expected


class TestEndToEnd:
    """Tests against a running server."""

    def test_get(self, running_server, site):
        """Test a plain GET over a socket."""
        status, headers, body = split_response(running_server.get("/docs/guide.txt"))

        assert status == 200
        assert headers["content-type"] == "text/plain; charset=utf-8"
        assert headers["content-length"] == str(len(body))
        assert headers["connection"] == "close"
        assert "etag" in headers
        assert body == (site / "docs" / "guide.txt").read_bytes()

    def test_head(self, running_server, site):
        """Test that HEAD sends headers only."""
        status, headers, body = split_response(running_server.get("/app.js", method="HEAD"))

        assert status == 200
        assert headers["content-length"] == str((site / "app.js").stat().st_size)
        assert body == b""

    def test_redirect(self, running_server):
        """Test the trailing-slash redirect."""
        status, headers, _ = split_response(running_server.get("/docs"))

        assert status == 301
        assert headers["location"] == "/docs/"

    def test_redirect_from_repeated_slashes(self, running_server):
        """Test that a multi-slash target is redirected on this host."""
        status, headers, _ = split_response(running_server.get("////evil.com/.."))

        assert status == 301
        assert headers["location"] == "/evil.com/../"

    def test_double_slash_target(self, running_server, site):
        """Test that //docs/guide.txt is a path, not an authority."""
        status, _, body = split_response(running_server.get("//docs/guide.txt"))

        assert status == 200
        assert body == (site / "docs" / "guide.txt").read_bytes()

    def test_encoded_slash(self, running_server, site):
        """Test that %2F decodes to a path separator."""
        status, _, body = split_response(running_server.get("/docs%2Fguide.txt"))

        assert status == 200
        assert body == (site / "docs" / "guide.txt").read_bytes()

    def test_encoded_question_mark_is_not_a_query(self, running_server):
        """Test that /app.js%3Fv=2 names a missing file rather than app.js."""
        status, _, _ = split_response(running_server.get("/app.js%3Fv=2"))
        assert status == 404

    def test_encoded_hash_is_not_a_fragment(self, running_server):
        """Test that /app.js%23x names a missing file rather than app.js."""
        status, _, _ = split_response(running_server.get("/app.js%23x"))
        assert status == 404

    def test_traversal(self, running_server):
        """Test that a traversal path is a 403."""
        status, _, body = split_response(running_server.get("/../../etc/passwd"))

        assert status == 403
        assert body == b"Forbidden"

    def test_method_not_allowed(self, running_server):
        """Test that POST gets 405 with Allow."""
        raw = b"POST /index.html HTTP/1.1\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
        status, headers, _ = split_response(running_server.request(raw))

        assert status == 405
        assert headers["allow"] == "GET, HEAD"

    def test_bad_request(self, running_server):
        """Test that garbage is a 400."""
        status, _, _ = split_response(running_server.request(b"HELLO\r\n\r\n"))
        assert status == 400

    def test_compressed(self, running_server, site):
        """Test gzip negotiation over the wire."""
        raw = running_server.get("/app.js", headers={"Accept-Encoding": "gzip"})
        status, headers, body = split_response(raw)

        assert status == 200
        assert headers["content-encoding"] == "gzip"
        assert headers["vary"] == "Accept-Encoding"
        assert gzip.decompress(body) == (site / "app.js").read_bytes()

    def test_keep_alive(self, running_server):
        """Test two requests on one connection."""
        request = b"GET /style.css HTTP/1.1\r\nHost: localhost\r\n\r\n"

        with socket.create_connection(("127.0.0.1", running_server.port), timeout=5) as sock:
            responses = []
            for _ in range(2):
                sock.sendall(request)
                data = b""
                while b"\r\n\r\n" not in data:
                    data += sock.recv(4096)
                _, headers, body = split_response(data)
                length = int(headers["content-length"])
                while len(body) < length:
                    body += sock.recv(4096)
                responses.append((headers, body))

        for headers, body in responses:
            assert headers["connection"] == "keep-alive"
            assert body == b"body { margin: 0; }\n"

    def test_bound_port(self, running_server):
        """Test that port 0 resolves to a real port."""
        assert running_server.port > 0
        assert running_server.server.url == f"http://127.0.0.1:{running_server.port}"
