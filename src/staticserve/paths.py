"""
=============================================================================
PATH RESOLUTION AND CONTAINMENT
=============================================================================

Maps URL paths onto the filesystem and proves the result stays inside the
served root. Every filesystem call the responder makes is on a path that
went through resolve_context() first.

=============================================================================
PATH TRAVERSAL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../etc/passwd                                              │
    │                                                                      │
    │  normalize_url_path   →  /../../etc/passwd                          │
    │  resolve("/srv/www")  →  normpath("/srv/www/../../etc/passwd")      │
    │                       →  /etc/passwd                                │
    │  is_under_root        →  False                                      │
    │                       →  PathTraversalError → 403, no stat()        │
    └─────────────────────────────────────────────────────────────────────┘

resolve() is purely lexical: it never touches the disk. Containment is a
prefix check on absolute paths, with the separator included so that
"/srv/www-private" is NOT inside "/srv/www":

    candidate == root                       → inside
    candidate.startswith(root + os.sep)     → inside
    anything else                           → outside

=============================================================================
SYMLINKS
=============================================================================

The lexical check cannot see symlinks. A link at /srv/www/escape pointing
to /etc passes it. resolve_context() therefore also compares the REAL
paths (os.path.realpath) unless follow_symlinks=True is passed, which the
server does only when allow_symlink_escape is configured.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from .errors import PathTraversalError


@dataclass(frozen=True)
class PathContext:
    """A URL path and the filesystem path it resolved to, known to be contained."""

    url_path: str
    fs_path: str
    root: str


def normalize_url_path(url_path: Optional[str]) -> str:
    """
    Collapse repeated slashes, force one leading slash, drop a trailing one.

        >>> normalize_url_path("a//b/")
        '/a/b'
        >>> normalize_url_path("")
        '/'

    Dot segments are left alone; resolve() deals with them.
    """
    if not url_path or url_path == "/":
        return "/"
    segments = [segment for segment in url_path.split("/") if segment]
    return "/" + "/".join(segments)


def resolve(root: str, url_path: str) -> str:
    """
    Join a URL path under root and normalize "." and ".." lexically.

        >>> resolve("/srv", "/a/b")
        '/srv/a/b'
    """
    relative = url_path.lstrip("/")
    return os.path.normpath(os.path.join(root, relative))


def is_under_root(candidate: str, root: str) -> bool:
    """True if candidate equals root or lies below it."""
    candidate = os.path.abspath(candidate)
    root = os.path.abspath(root)
    if candidate == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)


def resolve_context(
    root: str,
    url_path: str,
    follow_symlinks: bool = False,
) -> PathContext:
    """
    Normalize, resolve and guard in one step.

    Raises:
        PathTraversalError: If the path escapes root, lexically or (unless
            follow_symlinks) through a symlink.
    """
    root = os.path.abspath(root)
    normalized = normalize_url_path(url_path)
    fs_path = resolve(root, normalized)

    if not is_under_root(fs_path, root):
        raise PathTraversalError(url_path, fs_path)

    if not follow_symlinks:
        real_path = os.path.realpath(fs_path)
        if not is_under_root(real_path, os.path.realpath(root)):
            raise PathTraversalError(url_path, real_path)

    return PathContext(url_path=normalized, fs_path=fs_path, root=root)


# =============================================================================
# URL HELPERS (directory listings)
# =============================================================================

def _with_slash(url_path: str) -> str:
    return url_path if url_path.endswith("/") else url_path + "/"


def directory_url(base_url: str, name: str) -> str:
    """URL of a child directory: base + percent-encoded name + "/"."""
    return f"{_with_slash(base_url)}{quote(name, safe='')}/"


def file_url(base_url: str, name: str) -> str:
    """URL of a child file: base + percent-encoded name."""
    return f"{_with_slash(base_url)}{quote(name, safe='')}"


def parent_directory_url(url_path: str) -> Optional[str]:
    """
    URL of the parent directory, or None at the root.

        >>> parent_directory_url("/docs/api/")
        '/docs/'
        >>> parent_directory_url("/docs")
        '/'
    """
    if url_path in ("", "/"):
        return None
    path = url_path.rstrip("/")
    last_slash = path.rfind("/")
    if last_slash <= 0:
        return "/"
    return path[:last_slash] + "/"


def is_hidden_path(url_path: str) -> bool:
    """True if any segment starts with "." (other than "." and "..")."""
    return any(
        segment.startswith(".") and segment not in (".", "..")
        for segment in url_path.split("/")
    )
