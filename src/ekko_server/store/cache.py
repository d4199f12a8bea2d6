# src/ekko_server/store/cache.py
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple

from ekko_server.models.documents import Document

CacheEntry = Tuple[Document, Optional[str]]


class ShardCache:
    """
    Time-bounded cache of decoded shards, keyed by shard name.

    Entries older than `ttl` seconds are never served. Documents are copied on
    the way in and out so that callers mutating a loaded shard cannot leak an
    uncommitted change into the cache.
    """

    def __init__(self, ttl: float = 10.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Document, Optional[str]]] = {}

    def get(self, name: str) -> Optional[CacheEntry]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        stored_at, document, version = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[name]
            return None
        return document.model_copy(deep=True), version

    def put(self, name: str, document: Document, version: Optional[str]) -> None:
        self._entries[name] = (self._clock(), document.model_copy(deep=True), version)

    def invalidate(self, name: str) -> None:
        self._entries.pop(name, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None
