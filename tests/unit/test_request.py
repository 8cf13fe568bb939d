"""
Unit tests for HTTP request parsing.
"""

import threading

import pytest

from staticserve.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/assets/app.js"
        assert request.query == "v=3"
        assert request.url == "/assets/app.js?v=3"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed with lower-cased names."""
        request = parse_request(sample_get_request)

        assert request.headers["host"] == "localhost:8080"
        assert request.get_header("User-Agent") == "pytest"
        assert request.get_header("accept-encoding") == "gzip, br"
        assert request.is_keep_alive is True

    def test_parse_query_params(self):
        """Test query parameter parsing."""
        request = parse_request(b"GET /search?q=hello%20world&tag=a&tag=b HTTP/1.1\r\n\r\n")

        assert request.path == "/search"
        assert request.get_query("q") == "hello world"
        assert request.query_params["tag"] == ["a", "b"]
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_path_percent_decoded(self):
        """Test that the path is percent-decoded."""
        request = parse_request(b"GET /my%20file.txt HTTP/1.1\r\n\r\n")
        assert request.path == "/my file.txt"

    def test_trailing_slash_preserved(self):
        """Test that the raw path keeps its trailing slash."""
        assert parse_request(b"GET /docs/ HTTP/1.1\r\n\r\n").path == "/docs/"
        assert parse_request(b"GET /docs HTTP/1.1\r\n\r\n").path == "/docs"

    def test_encoded_question_mark_stays_in_path(self):
        """Test that %3F is part of the path, not the start of a query."""
        request = parse_request(b"GET /app.js%3Fv=2 HTTP/1.1\r\n\r\n")

        assert request.path == "/app.js?v=2"
        assert request.query == ""
        assert request.raw_path == "/app.js%3Fv=2"
        assert request.url == "/app.js%3Fv=2"

    def test_double_slash_target_is_a_path(self):
        """Test that //docs/guide.txt is not read as a host name."""
        request = parse_request(b"GET //docs/guide.txt?x=1 HTTP/1.1\r\n\r\n")

        assert request.path == "//docs/guide.txt"
        assert request.query == "x=1"

    def test_absolute_form_target(self):
        """Test that scheme and authority are dropped from an absolute URL."""
        request = parse_request(b"GET http://example.com/a%20b?q=1 HTTP/1.1\r\n\r\n")

        assert request.raw_path == "/a%20b"
        assert request.path == "/a b"
        assert request.query == "q=1"

    def test_raw_path_defaults_to_encoded_path(self):
        """Test raw_path for requests built in code."""
        request = HTTPRequest(method="GET", path="/a b#1.txt")
        assert request.raw_path == "/a%20b%231.txt"

    def test_dotdot_left_for_the_path_guard(self):
        """Test that traversal paths parse; the responder answers 403."""
        request = parse_request(b"GET /../../../etc/passwd HTTP/1.1\r\n\r\n")
        assert request.path == "/../../../etc/passwd"

    def test_nul_in_path_rejected(self):
        """Test that an encoded NUL byte is a 400."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET /a%00.txt HTTP/1.1\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_parse_invalid_method(self):
        """Test that unknown methods are rejected with 405."""
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET\r\nHost: test\r\n\r\n")
        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        """Test that HTTP/2.0 in a request line is a 505."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")
        assert exc_info.value.status_code == 505

    def test_missing_terminator(self):
        """Test that a request without a blank line is a 400."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        request = parse_request(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 keep-alive defaults."""
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        request_10_ka = parse_request(b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n")
        assert request_10_ka.is_keep_alive is True

        request_11 = parse_request(b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n")
        assert request_11.is_keep_alive is False

    def test_content_length_handling(self):
        """Test that exactly Content-Length body bytes are kept."""
        body = b"test body"
        raw = b"POST / HTTP/1.1\r\nContent-Length: 9\r\n\r\n" + body

        request = parse_request(raw)
        assert request.body == body

    def test_invalid_content_length(self):
        """Test that a non-numeric Content-Length is a 400."""
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n")

    def test_short_body(self):
        """Test that a body shorter than Content-Length is a 400."""
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: 50\r\n\r\nshort")

    def test_repeated_headers_combined(self):
        """Test that repeated headers are joined with a comma."""
        raw = b"GET / HTTP/1.1\r\nAccept-Encoding: gzip\r\nAccept-Encoding: br\r\n\r\n"
        assert parse_request(raw).get_header("accept-encoding") == "gzip, br"

    def test_folded_header(self):
        """Test obsolete line folding."""
        raw = b"GET / HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n"
        assert parse_request(raw).get_header("x-long") == "first second"

    def test_scheme_and_cancel_event(self):
        """Test that the connection scheme and cancel event are attached."""
        cancel = threading.Event()
        request = RequestParser().parse(
            b"GET / HTTP/1.1\r\n\r\n", scheme="https", cancel_event=cancel
        )

        assert request.is_secure
        assert request.cancel_event is cancel
        assert not request.is_cancelled
        cancel.set()
        assert request.is_cancelled

    def test_forwarded_proto_ignored_by_default(self):
        """Test that X-Forwarded-Proto is not trusted by default."""
        raw = b"GET / HTTP/1.1\r\nX-Forwarded-Proto: https\r\n\r\n"
        assert RequestParser().parse(raw).scheme == "http"

    def test_forwarded_proto_trusted(self):
        """Test that a trusted proxy's X-Forwarded-Proto sets the scheme."""
        raw = b"GET / HTTP/1.1\r\nX-Forwarded-Proto: https, http\r\n\r\n"
        assert RequestParser(trust_forwarded_proto=True).parse(raw).scheme == "https"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_immutable(self):
        """Test that requests and their headers cannot be modified."""
        request = HTTPRequest(method="GET", path="/", headers={"Origin": "https://a.com"})

        with pytest.raises(AttributeError):
            request.path = "/other"
        with pytest.raises(TypeError):
            request.headers["origin"] = "https://evil.com"

    def test_method_upper_cased(self):
        """Test that the method is normalized to upper case."""
        assert HTTPRequest(method="get").method == "GET"

    def test_headers_lower_cased(self):
        """Test that header names are lower-cased on construction."""
        request = HTTPRequest(method="GET", headers={"Accept-Encoding": "br"})
        assert dict(request.headers) == {"accept-encoding": "br"}
