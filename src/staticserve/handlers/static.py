"""
=============================================================================
STATIC RESOURCE RESPONDER
=============================================================================

The terminal handler of the pipeline: turns a GET or HEAD into a file, a
directory index, a listing, a redirect or an error.

=============================================================================
DECISION TABLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  method not GET/HEAD            → 405  Allow: GET, HEAD             │
    │  path escapes root              → 403  (security warning logged)    │
    │  regular file                   → 200  file                         │
    │  directory, no trailing "/"     → 301  Location: <path>/[?query]    │
    │  directory with index.html      → 200  index.html                   │
    │  directory, listing enabled     → 200  HTML listing                 │
    │  directory, listing disabled    → 404                               │
    │  missing, SPA mode              → 200  <root>/index.html, else 404  │
    │  missing, no SPA                → 404                               │
    │  any other stat/open failure    → 404                               │
    └─────────────────────────────────────────────────────────────────────┘

The trailing-slash test looks at the path the client SENT. Normalization
strips trailing slashes, so testing the normalized path would redirect
"/docs/" to "/docs/" forever.

=============================================================================
VALIDATORS
=============================================================================

    Last-Modified: Sat, 17 Oct 2026 12:00:00 GMT
    ETag:          W/"<size hex>-<mtime ms hex>"

        size 1234 bytes, mtime 1760702400.5 s  →  W/"4d2-199f20a87f4"

The ETag is weak (W/): it follows size and mtime, not content. Same size
and mtime always give the same tag; changing either changes it.

=============================================================================
"""

import logging
import os
import stat as stat_module
from urllib.parse import quote

from ..errors import PathTraversalError
from ..http.request import HTTPRequest
from ..http.response import (
    FileStream,
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    forbidden,
    method_not_allowed,
    not_found,
    redirect,
)
from ..http.mime_types import get_content_type
from ..paths import PathContext, resolve_context
from .listing import render_directory_listing, scan_directory


logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "HEAD")


def make_etag(size: int, mtime_ms: int) -> str:
    """Weak ETag from file size and modification time in milliseconds."""
    return f'W/"{size:x}-{mtime_ms:x}"'


class StaticFileHandler:
    """
    Serves files below root_dir.

    Usage:
        handler = StaticFileHandler("/var/www", enable_spa=True)
        response = handler.handle(request)

    Instances hold configuration only and are shared by all worker threads.
    """

    def __init__(
        self,
        root_dir: str,
        index_file: str = "index.html",
        enable_spa: bool = False,
        enable_directory_listing: bool = False,
        show_hidden: bool = False,
        follow_symlinks: bool = False,
    ):
        """
        Args:
            root_dir: Directory to serve. Must exist.
            index_file: File served for directory requests.
            enable_spa: Serve <root>/<index_file> for paths that do not exist.
            enable_directory_listing: Render an HTML listing for directories
                                      without an index file.
            show_hidden: Include dot-files in listings.
            follow_symlinks: Allow symlinks that point outside root_dir.
        """
        self.root_dir = os.path.abspath(root_dir)
        self.index_file = index_file
        self.enable_spa = enable_spa
        self.enable_directory_listing = enable_directory_listing
        self.show_hidden = show_hidden
        self.follow_symlinks = follow_symlinks

        if not os.path.isdir(self.root_dir):
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in ALLOWED_METHODS:
            return method_not_allowed(list(ALLOWED_METHODS))

        try:
            context = resolve_context(self.root_dir, request.path, self.follow_symlinks)
        except PathTraversalError as e:
            logger.warning(
                f"Path traversal attempt from {request.client_address[0] or 'unknown'}: "
                f"{e.url_path!r} resolved to {e.resolved!r}"
            )
            return forbidden()

        try:
            stats = os.stat(context.fs_path)
        except FileNotFoundError:
            if self.enable_spa:
                return self._serve_spa_index(request)
            return not_found()
        except OSError as e:
            logger.debug(f"stat failed for {context.fs_path}: {e}")
            return not_found()

        if stat_module.S_ISREG(stats.st_mode):
            return self.serve_file(context.fs_path, stats, request)

        if stat_module.S_ISDIR(stats.st_mode):
            return self._serve_directory(context, request)

        return not_found()

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def _serve_directory(self, context: PathContext, request: HTTPRequest) -> HTTPResponse:
        if not request.path.endswith("/"):
            # Location comes from the normalized path: "////evil.com/.." must
            # not turn into the protocol-relative "//evil.com/../".
            location = quote(context.url_path.rstrip("/")) + "/"
            if request.query:
                location += "?" + request.query
            return redirect(location)

        index_path = os.path.join(context.fs_path, self.index_file)
        try:
            index_stats = os.stat(index_path)
        except OSError:
            index_stats = None
        if index_stats is not None and stat_module.S_ISREG(index_stats.st_mode):
            return self.serve_file(index_path, index_stats, request)

        if self.enable_directory_listing:
            return self.list_directory(context, request)

        return not_found()

    def list_directory(self, context: PathContext, request: HTTPRequest) -> HTTPResponse:
        """Render the listing for a directory. Listing failures are a 404."""
        url_path = context.url_path if context.url_path == "/" else context.url_path + "/"
        try:
            entries = scan_directory(context.fs_path, quote(url_path), self.show_hidden)
        except OSError as e:
            logger.warning(f"Cannot list directory {context.fs_path}: {e}")
            return not_found()

        response = ResponseBuilder().html(render_directory_listing(url_path, entries)).build()
        if request.method == "HEAD":
            response.body = b""
        return response

    def _serve_spa_index(self, request: HTTPRequest) -> HTTPResponse:
        try:
            context = resolve_context(self.root_dir, "/" + self.index_file, self.follow_symlinks)
            stats = os.stat(context.fs_path)
        except (PathTraversalError, OSError) as e:
            logger.debug(f"SPA fallback unavailable for {request.path}: {e}")
            return not_found()
        if not stat_module.S_ISREG(stats.st_mode):
            return not_found()
        return self.serve_file(context.fs_path, stats, request)

    # =========================================================================
    # FILES
    # =========================================================================

    def serve_file(
        self,
        fs_path: str,
        stats: os.stat_result,
        request: HTTPRequest,
    ) -> HTTPResponse:
        """
        200 response for a regular file.

        HEAD gets the same headers and no body, and the file is not opened.
        GET opens the file now, so a file that disappeared or is unreadable
        is a 404 here rather than a broken stream later.
        """
        builder = (
            ResponseBuilder()
            .header("Content-Type", get_content_type(fs_path))
            .header("Last-Modified", format_http_date(stats.st_mtime))
            .header("ETag", make_etag(stats.st_size, stats.st_mtime_ns // 1_000_000))
            .header("Content-Length", str(stats.st_size))
        )

        if request.method == "HEAD":
            return builder.build()

        try:
            stream = FileStream.open(fs_path, size=stats.st_size, cancel_event=request.cancel_event)
        except OSError as e:
            logger.debug(f"open failed for {fs_path}: {e}")
            return not_found()

        return builder.stream(stream).build()
