"""
=============================================================================
DIRECTORY LISTING
=============================================================================

Builds and renders the HTML index page for a directory without an
index.html, when listings are enabled.

    Directory: /docs/
    ┌──────────────────────────┬──────────┬─────────────────────┐
    │ Name                     │     Size │            Modified │
    ├──────────────────────────┼──────────┼─────────────────────┤
    │ 📁 ..                    │        - │                   - │
    │ 📁 api                   │        - │ 2026-10-01 09:12:44 │
    │ 📁 guides                │        - │ 2026-09-28 17:03:10 │
    │ 📄 README.md             │   2.4 KB │ 2026-10-02 08:00:00 │
    │ 🖼️ logo.png              │  18.0 KB │ 2026-08-14 11:30:05 │
    └──────────────────────────┴──────────┴─────────────────────┘

Directories come first, then files; each group sorted by name
(case-sensitive). Names are HTML-escaped, link targets percent-encoded.

=============================================================================
"""

import html
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

from ..http.mime_types import get_mime_type, mime_class
from ..paths import directory_url, file_url, parent_directory_url


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    url: str
    size: int
    mtime: float
    mime_type: str
    is_directory: bool

    @property
    def kind(self) -> str:
        """"directory" or the MIME class of the file."""
        return "directory" if self.is_directory else mime_class(self.mime_type)


def format_size(num_bytes: int) -> str:
    """
    Human-readable size with one decimal.

        >>> format_size(0)
        '0 B'
        >>> format_size(1536)
        '1.5 KB'
    """
    if num_bytes <= 0:
        return "0 B"
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def sort_entries(entries: List[DirectoryEntry]) -> List[DirectoryEntry]:
    """Directories first, then files, each by name."""
    return sorted(entries, key=lambda entry: (not entry.is_directory, entry.name))


def scan_directory(
    fs_path: str,
    url_path: str,
    show_hidden: bool = False,
) -> List[DirectoryEntry]:
    """
    Stat every child of a directory and return sorted entries.

    url_path is the percent-encoded URL of the directory; child names are
    encoded and appended to it.

    Children that vanish or cannot be stat'ed between listing and stat are
    skipped. OSError from listing the directory itself propagates.
    """
    entries = []
    with os.scandir(fs_path) as iterator:
        for child in iterator:
            if not show_hidden and child.name.startswith("."):
                continue
            try:
                stat = child.stat()
                is_dir = child.is_dir()
            except OSError as e:
                logger.debug(f"Skipping {child.path} in listing: {e}")
                continue
            entries.append(DirectoryEntry(
                name=child.name,
                url=directory_url(url_path, child.name) if is_dir else file_url(url_path, child.name),
                size=0 if is_dir else stat.st_size,
                mtime=stat.st_mtime,
                mime_type="" if is_dir else get_mime_type(child.name),
                is_directory=is_dir,
            ))
    return sort_entries(entries)


_ICONS = {
    "directory": "📁",
    "image": "🖼️",
    "text": "📄",
    "audio": "🎵",
    "video": "🎬",
}

_STYLE = """
        body { font-family: system-ui, sans-serif; padding: 2rem; max-width: 1200px; margin: 0 auto; }
        table { width: 100%; border-collapse: collapse; }
        th { text-align: left; padding: 8px; border-bottom: 2px solid #ddd; }
        td { padding: 8px; border-bottom: 1px solid #eee; }
        a { text-decoration: none; color: #0066cc; }
        a:hover { text-decoration: underline; }
        .size, .date { text-align: right; }
        .icon { padding-right: 8px; }"""


def _row(href: str, icon: str, name: str, size: str, date: str) -> str:
    return (
        "<tr>"
        f'<td><a href="{html.escape(href)}"><span class="icon">{icon}</span>{html.escape(name)}</a></td>'
        f'<td class="size">{size}</td>'
        f'<td class="date">{date}</td>'
        "</tr>"
    )


def render_directory_listing(url_path: str, entries: List[DirectoryEntry]) -> str:
    """
    Render entries as a complete HTML page.

    url_path is the decoded directory path, shown as the title. The parent
    link is built from its percent-encoded form.
    """
    title = html.escape(f"Directory: {url_path}")
    rows = []

    parent: Optional[str] = parent_directory_url(quote(url_path))
    if parent is not None:
        rows.append(_row(parent, _ICONS["directory"], "..", "-", "-"))

    for entry in entries:
        modified = datetime.fromtimestamp(entry.mtime, tz=timezone.utc)
        rows.append(_row(
            entry.url,
            _ICONS.get(entry.kind, "📎"),
            entry.name,
            "-" if entry.is_directory else format_size(entry.size),
            modified.strftime("%Y-%m-%d %H:%M:%S"),
        ))

    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '    <meta charset="utf-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"    <title>{title}</title>\n"
        f"    <style>{_STYLE}\n    </style>\n"
        "</head>\n"
        "<body>\n"
        f"    <h1>{title}</h1>\n"
        "    <table>\n"
        '        <thead><tr><th>Name</th><th class="size">Size</th><th class="date">Modified</th></tr></thead>\n'
        "        <tbody>\n"
        + "".join(f"            {row}\n" for row in rows)
        + "        </tbody>\n"
        "    </table>\n"
        "</body>\n"
        "</html>\n"
    )
