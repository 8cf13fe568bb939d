"""
Unit tests for the static file responder.
"""

import os
import threading

import pytest

from staticserve.errors import RequestCancelled
from staticserve.handlers import StaticFileHandler, make_etag
from staticserve.http import HTTPStatus, RequestParser


@pytest.fixture
def handler(site) -> StaticFileHandler:
    return StaticFileHandler(str(site))


class TestServeFile:
    """Tests for regular files."""

    def test_get_file(self, handler, make_request, site):
        """Test that a file is served with its content and type."""
        response = handler.handle(make_request("/style.css"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.read() == (site / "style.css").read_bytes()

    def test_body_is_streamed(self, handler, make_request):
        """Test that file bodies are streams, not preloaded bytes."""
        response = handler.handle(make_request("/app.js"))
        assert response.is_streaming
        response.close()

    def test_validator_headers(self, handler, make_request, site):
        """Test Content-Length, Last-Modified and ETag."""
        response = handler.handle(make_request("/logo.png"))
        stats = os.stat(site / "logo.png")

        assert response.headers["Content-Length"] == str(stats.st_size)
        assert response.headers["Last-Modified"].endswith("GMT")
        assert response.headers["ETag"] == make_etag(
            stats.st_size, stats.st_mtime_ns // 1_000_000
        )
        response.close()

    def test_etag_stable(self, handler, make_request):
        """Test that an unchanged file keeps its ETag."""
        first = handler.handle(make_request("/style.css"))
        second = handler.handle(make_request("/style.css"))
        assert first.headers["ETag"] == second.headers["ETag"]
        first.close()
        second.close()

    def test_etag_changes_with_content(self, handler, make_request, site):
        """Test that a rewritten file gets a new ETag."""
        before = handler.handle(make_request("/style.css"))
        (site / "style.css").write_text("body { margin: 0; padding: 0; }\n")
        os.utime(site / "style.css", (1_800_000_000, 1_800_000_000))
        after = handler.handle(make_request("/style.css"))

        assert before.headers["ETag"] != after.headers["ETag"]
        before.close()
        after.close()

    def test_etag_format(self):
        """Test the weak size-mtime ETag encoding."""
        assert make_etag(1234, 1760702400500) == 'W/"4d2-199f20a87f4"'

    def test_head_matches_get_without_body(self, handler, make_request):
        """Test that HEAD has GET's headers and an empty body."""
        get = handler.handle(make_request("/app.js"))
        head = handler.handle(make_request("/app.js", method="HEAD"))

        assert head.status == get.status
        assert head.headers == get.headers
        assert head.body == b""
        assert not head.is_streaming
        get.close()

    def test_missing_file(self, handler, make_request):
        """Test that a missing file is a 404 with a generic body."""
        response = handler.handle(make_request("/nope.txt"))
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"

    def test_cancelled_stream(self, handler, make_request):
        """Test that a set cancel event stops the stream."""
        cancel = threading.Event()
        response = handler.handle(make_request("/app.js", cancel_event=cancel))
        cancel.set()

        with pytest.raises(RequestCancelled):
            response.read()


class TestMethods:
    """Tests for method handling."""

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    def test_method_not_allowed(self, handler, make_request, method):
        """Test that only GET and HEAD are served."""
        response = handler.handle(make_request("/index.html", method=method))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"


class TestSecurity:
    """Tests for the path guard inside the responder."""

    def test_traversal_forbidden(self, handler, make_request):
        """Test that escaping the root is a 403."""
        response = handler.handle(make_request("/../../etc/passwd"))

        assert response.status == HTTPStatus.FORBIDDEN
        assert response.body == b"Forbidden"

    def test_traversal_logged(self, handler, make_request, caplog):
        """Test that traversal attempts are logged as warnings."""
        with caplog.at_level("WARNING", logger="staticserve.handlers.static"):
            handler.handle(make_request("/../secret"))
        assert "Path traversal attempt" in caplog.text


class TestDirectories:
    """Tests for directory requests."""

    def test_redirect_adds_slash(self, handler, make_request):
        """Test GET /docs → 301 Location: /docs/."""
        response = handler.handle(make_request("/docs"))

        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"] == "/docs/"

    def test_redirect_keeps_query(self, handler, make_request):
        """Test that the query string survives the redirect."""
        response = handler.handle(make_request("/docs", query="lang=en"))
        assert response.headers["Location"] == "/docs/?lang=en"

    def test_index_file(self, handler, make_request):
        """Test that /docs/ serves docs/index.html."""
        response = handler.handle(make_request("/docs/"))

        assert response.status == HTTPStatus.OK
        assert response.read() == b"<h1>Docs</h1>"

    def test_root_index(self, handler, make_request):
        """Test that / serves index.html."""
        response = handler.handle(make_request("/"))
        assert b"<title>Home</title>" in response.read()

    def test_no_index_without_listing(self, handler, make_request):
        """Test that a directory without index is a 404 by default."""
        response = handler.handle(make_request("/files/"))
        assert response.status == HTTPStatus.NOT_FOUND

    def test_listing(self, site, make_request):
        """Test that listings show directories first, hidden files hidden."""
        handler = StaticFileHandler(str(site), enable_directory_listing=True)
        response = handler.handle(make_request("/files/"))
        body = response.read().decode()

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"].startswith("text/html")
        assert "Directory: /files/" in body
        assert body.index("archive") < body.index("report.pdf")
        assert ".hidden" not in body

    def test_listing_show_hidden(self, site, make_request):
        """Test that show_hidden includes dot-files."""
        handler = StaticFileHandler(str(site), enable_directory_listing=True, show_hidden=True)
        body = handler.handle(make_request("/files/")).read().decode()
        assert ".hidden" in body

    def test_listing_head(self, site, make_request):
        """Test that HEAD on a listing has no body."""
        handler = StaticFileHandler(str(site), enable_directory_listing=True)
        response = handler.handle(make_request("/files/", method="HEAD"))

        assert response.status == HTTPStatus.OK
        assert response.body == b""


class TestSPA:
    """Tests for single-page-app fallback."""

    def test_fallback_on(self, site, make_request):
        """Test that unknown paths serve the root index with SPA on."""
        handler = StaticFileHandler(str(site), enable_spa=True)
        response = handler.handle(make_request("/app/settings/profile"))

        assert response.status == HTTPStatus.OK
        assert b"<title>Home</title>" in response.read()

    def test_fallback_off(self, handler, make_request):
        """Test that unknown paths are 404 with SPA off."""
        response = handler.handle(make_request("/app/settings/profile"))
        assert response.status == HTTPStatus.NOT_FOUND

    def test_fallback_without_index(self, site, make_request):
        """Test that SPA fallback with no index file is a 404."""
        (site / "index.html").unlink()
        handler = StaticFileHandler(str(site), enable_spa=True)

        response = handler.handle(make_request("/anything"))
        assert response.status == HTTPStatus.NOT_FOUND

    def test_traversal_not_rescued_by_spa(self, site, make_request):
        """Test that SPA mode still forbids traversal."""
        handler = StaticFileHandler(str(site), enable_spa=True)
        response = handler.handle(make_request("/../../etc/passwd"))
        assert response.status == HTTPStatus.FORBIDDEN


class TestConstruction:
    """Tests for handler construction."""

    def test_missing_root(self, tmp_path):
        """Test that a missing root directory is rejected."""
        with pytest.raises(ValueError):
            StaticFileHandler(str(tmp_path / "missing"))


class TestEncodedTargets:
    """Tests for request targets with encoded or repeated separators."""

    @pytest.fixture
    def parse(self):
        parser = RequestParser()
        return lambda target: parser.parse(f"GET {target} HTTP/1.1\r\n\r\n".encode())

    @pytest.mark.parametrize("target", ["////evil.com/..", "/%2Fevil.com/.."])
    def test_redirect_stays_on_this_host(self, handler, parse, target):
        """Test that the slash redirect never points at another host."""
        response = handler.handle(parse(target))

        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert not response.headers["Location"].startswith("//")
        assert response.headers["Location"] == "/evil.com/../"

    def test_redirect_from_repeated_slashes(self, handler, parse):
        """Test //docs → /docs/."""
        response = handler.handle(parse("//docs"))
        assert response.headers["Location"] == "/docs/"

    def test_double_slash_serves_file(self, handler, parse, site):
        """Test that //docs/guide.txt serves docs/guide.txt."""
        response = handler.handle(parse("//docs/guide.txt"))

        assert response.status == HTTPStatus.OK
        assert response.read() == (site / "docs" / "guide.txt").read_bytes()

    def test_listing_links_encode_directory(self, site, parse):
        """Test links inside a directory whose name needs encoding."""
        (site / "a#b").mkdir()
        (site / "a#b" / "x.txt").write_text("x")
        handler = StaticFileHandler(str(site), enable_directory_listing=True)

        body = handler.handle(parse("/a%23b/")).read().decode()

        assert 'href="/a%23b/x.txt"' in body
        assert 'href="/"' in body
        assert "/a#b/x.txt" not in body
