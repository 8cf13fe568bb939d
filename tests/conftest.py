"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from staticserve import ServerConfig, StaticServer
from staticserve.http import HTTPRequest


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /assets/app.js?v=3 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, br\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A small site tree:

        index.html
        app.js
        style.css
        logo.png
        .env
        docs/index.html
        docs/guide.txt
        files/report.pdf
        files/archive/
        files/.hidden
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<!DOCTYPE html><title>Home</title>")
    (root / "app.js").write_text("console.log('hello');\n" * 200)
    (root / "style.css").write_text("body { margin: 0; }\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)
    (root / ".env").write_text("SECRET=1\n")

    docs = root / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("<h1>Docs</h1>")
    (docs / "guide.txt").write_text("Read me.\n")

    files = root / "files"
    files.mkdir()
    (files / "report.pdf").write_bytes(b"%PDF-1.4" + b"0" * 2048)
    (files / "archive").mkdir()
    (files / ".hidden").write_text("hidden\n")
    return root


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """Factory for HTTPRequest objects."""

    def factory(
        path: str = "/",
        method: str = "GET",
        headers: Optional[dict] = None,
        query: str = "",
        scheme: str = "http",
        cancel_event: Optional[threading.Event] = None,
    ) -> HTTPRequest:
        return HTTPRequest(
            method=method,
            path=path,
            query=query,
            scheme=scheme,
            headers=headers or {},
            client_address=("127.0.0.1", 50000),
            cancel_event=cancel_event,
        )

    return factory


@pytest.fixture
def config(site: Path) -> ServerConfig:
    """Test server configuration serving the site fixture."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        root_dir=str(site),
        log_level="WARNING",
    )


class RunningServer:
    """StaticServer running in a background thread."""

    def __init__(self, server: StaticServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, raw: bytes, timeout: float = 5.0) -> bytes:
        """Send raw bytes on a fresh connection and read until the server closes it."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as sock:
            sock.sendall(raw)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def get(self, path: str, headers: Optional[dict] = None, method: str = "GET") -> bytes:
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost", "Connection: close"]
        lines.extend(f"{name}: {value}" for name, value in (headers or {}).items())
        return self.request(("\r\n".join(lines) + "\r\n\r\n").encode("latin-1"))


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A StaticServer on a free port, stopped after the test."""
    runner = RunningServer(StaticServer(config))
    runner.start()
    yield runner
    runner.stop()
