"""
=============================================================================
RESPONSE HEADERS
=============================================================================

HTTP header names are case-insensitive (RFC 7230 §3.2), but middleware in
this package is written against canonical names like "Content-Length".
If one stage writes "content-length" and another deletes "Content-Length",
both must hit the same entry.

Headers is an ordered, case-insensitive mapping:

    headers = Headers()
    headers["Content-Type"] = "text/html"
    headers["content-type"] = "text/plain"   # last write wins
    headers["CONTENT-TYPE"]                  # → "text/plain"
    list(headers)                            # → ["content-type"]

    - Lookup, assignment and deletion ignore case.
    - Iteration yields names as they were LAST written, in the order the
      name was FIRST inserted (like a dict update).
    - One value per name. Set-Cookie style multi-headers are not needed by
      a static file server.

=============================================================================
"""

from typing import Dict, Iterator, Mapping, MutableMapping, Optional, Tuple, Union


HeadersInit = Union[Mapping[str, str], "Headers", None]


class Headers(MutableMapping):
    """Case-insensitive, insertion-ordered header mapping."""

    def __init__(self, initial: HeadersInit = None, **kwargs: str):
        # lower-cased name → (display name, value)
        self._items: Dict[str, Tuple[str, str]] = {}
        if initial:
            self.update(initial)
        if kwargs:
            self.update(kwargs)

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._items[name.lower()] = (name, str(value))

    def __delitem__(self, name: str) -> None:
        del self._items[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return (display for display, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self.lower_items() == other.lower_items()
        if isinstance(other, Mapping):
            return self.lower_items() == {k.lower(): v for k, v in other.items()}
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def lower_items(self) -> Dict[str, str]:
        """Return a plain dict keyed by lower-cased names."""
        return {key: value for key, (_, value) in self._items.items()}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        item = self._items.get(name.lower())
        return item[1] if item is not None else default

    def copy(self) -> "Headers":
        return Headers(self)

    def add_vary(self, field_name: str) -> None:
        """Append a field to the Vary header unless it is already listed."""
        current = self.get("Vary", "")
        listed = {part.strip().lower() for part in current.split(",") if part.strip()}
        if field_name.lower() not in listed:
            self["Vary"] = f"{current}, {field_name}" if current else field_name
