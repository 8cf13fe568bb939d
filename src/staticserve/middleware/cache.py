"""
=============================================================================
RESPONSE CACHE MIDDLEWARE
=============================================================================

In-memory cache of successful GET responses, keyed by URL (path + query),
bounded by entry count and time-to-live.

=============================================================================
LRU ON AN ORDEREDDICT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   oldest ◄──────────────────────────────────────────► newest        │
    │                                                                      │
    │   [ /a ] [ /b ] [ /c ]          max_size = 3                        │
    │                                                                      │
    │   hit /a      → move_to_end     [ /b ] [ /c ] [ /a ]                │
    │   store /d    → append          [ /b ] [ /c ] [ /a ] [ /d ]         │
    │               → over capacity   evict ONE from the front: /b        │
    │                                 [ /c ] [ /a ] [ /d ]                │
    └─────────────────────────────────────────────────────────────────────┘

Expired entries are dropped lazily, when a lookup finds them.

=============================================================================
BODIES
=============================================================================

Response bodies are single-use, so the cache never hands out what it
stores:

    miss:  response = next(request)
           store(response.clone())     ← buffers a file stream
           return response
    hit:   return stored.clone()       ← every caller gets its own body

A failure while producing or buffering the response (exception,
cancellation) propagates before anything is stored.

=============================================================================
THREAD SAFETY
=============================================================================

One lock guards the map. It is held only for dictionary operations, never
while the downstream handler runs, so a slow miss does not block hits on
other keys. Two concurrent misses on one key both go downstream and the
later store wins.

=============================================================================
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """
    ttl:      Seconds a response stays fresh. 0 disables caching.
    max_size: Maximum number of cached URLs.
    """

    ttl: float = 0
    max_size: int = 100

    def validate(self) -> None:
        if self.ttl < 0:
            raise ValueError(f"Cache ttl must be >= 0, got {self.ttl}")
        if self.max_size < 1:
            raise ValueError(f"Cache max_size must be >= 1, got {self.max_size}")

    @property
    def enabled(self) -> bool:
        return self.ttl > 0


@dataclass
class CacheEntry:
    key: str
    response: HTTPResponse
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return self.expires_at > now


class ResponseCache:
    """
    Thread-safe LRU map of URL → response snapshot with per-entry expiry.

    clock defaults to time.monotonic and can be replaced in tests.
    """

    def __init__(
        self,
        max_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[HTTPResponse]:
        """
        A fresh copy of the cached response, or None.

        A hit moves the entry to the most-recently-used end. An expired
        entry is removed.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self.clock()):
                self._entries.move_to_end(key)
                self.hits += 1
                snapshot = entry.response
            else:
                if entry is not None:
                    del self._entries[key]
                self.misses += 1
                return None
        # Snapshots are always buffered, so cloning outside the lock is safe.
        return snapshot.clone()

    def put(self, key: str, response: HTTPResponse, ttl: float) -> None:
        """
        Store a snapshot of response. The caller keeps the original.

        Buffering happens before the lock is taken; if it fails nothing is
        stored.
        """
        snapshot = response.clone()
        with self._lock:
            self._entries[key] = CacheEntry(key, snapshot, self.clock() + ttl)
            self._entries.move_to_end(key)
            if len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self):
        """Keys from least to most recently used (a copy)."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


class CacheMiddleware(Middleware):
    """
    Serves repeated GETs from memory.

        chain.use(CacheMiddleware(CacheConfig(ttl=60, max_size=500)))

    Non-GET requests and a ttl of 0 pass straight through. Only 2xx
    responses are stored. Each instance has its own ResponseCache.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        cache: Optional[ResponseCache] = None,
    ):
        self.config = config or CacheConfig()
        self.config.validate()
        self.cache = cache or ResponseCache(max_size=self.config.max_size)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method != "GET" or not self.config.enabled:
            return next(request)

        key = request.url
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        response = next(request)
        if response.ok:
            self.cache.put(key, response, self.config.ttl)
        return response
