"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to MIME types for the Content-Type header.

    get_mime_type("app.js")        → "text/javascript"
    get_content_type("index.html") → "text/html; charset=utf-8"
    get_content_type("logo.png")   → "image/png"
    mime_class("image/png")        → "image"      (directory listing icons)

Text types get a charset parameter. Binary types do not: a charset on
image/png means nothing and some clients reject it.

Unknown extensions fall back to application/octet-stream, which browsers
download rather than render.

=============================================================================
"""

import os
from pathlib import Path
from typing import Optional, Union


# Extensions are lower-case and include the dot.
MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".jsx": "text/jsx",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".tsx": "application/typescript",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",

    # Audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Documents, archives, other
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".wasm": "application/wasm",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/manifest+json",
    "application/xml",
    "application/javascript",
    "application/typescript",
    "image/svg+xml",
}


def register_mime_type(extension: str, mime_type: str) -> None:
    """Add or override an extension mapping, e.g. (".custom", "text/x-custom")."""
    if not extension.startswith("."):
        extension = "." + extension
    MIME_TYPES[extension.lower()] = mime_type


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    MIME type for a file name or path, based on its extension.

        >>> get_mime_type("/srv/site/style.CSS")
        'text/css'
        >>> get_mime_type("archive.xyz")
        'application/octet-stream'
    """
    extension = os.path.splitext(str(path))[1].lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """True for text/* and the application/* types that are really text."""
    base = mime_type.split(";")[0].strip().lower()
    return base.startswith("text/") or base in _TEXT_APPLICATION_TYPES


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """Content-Type header value for a file, with charset for text types."""
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type


def mime_class(mime_type: str) -> str:
    """
    Coarse class of a MIME type for directory listings:
    "text", "image", "audio", "video", "font" or "binary".
    """
    major = mime_type.split("/", 1)[0]
    if major in ("image", "audio", "video", "font"):
        return major
    if is_text_type(mime_type):
        return "text"
    return "binary"
