"""
=============================================================================
REQUEST HANDLERS
=============================================================================

The terminal stage of the pipeline: turns a request path into a file,
directory listing, redirect, or error response.

    StaticFileHandler    files, index files, SPA fallback, 301 for
                         directories without a trailing slash
    listing              HTML directory listings

=============================================================================
"""

from .listing import DirectoryEntry, render_directory_listing, scan_directory
from .static import StaticFileHandler, make_etag

__all__ = [
    "StaticFileHandler",
    "make_etag",
    "DirectoryEntry",
    "scan_directory",
    "render_directory_listing",
]
