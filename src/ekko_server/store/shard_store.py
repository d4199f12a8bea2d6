# src/ekko_server/store/shard_store.py
"""
ShardStore: load/save of named, encrypted, versioned shard documents.

Read path: cache → blob store → JSON envelope → codec → schema.
An absent blob reads as the shard's empty default (version None). A blob
that fails to decode is replaced by the empty default, which is persisted
immediately.

Write path: schema → codec → conditional put. On a stale token the shard is
reloaded bypassing the cache, the caller's mutation is replayed on the fresh
document and the put is retried once; a second conflict is raised to the
caller.

`peek` reads without caching or healing, for tooling that must not write.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Dict, Optional, Tuple, Type

from pydantic import ValidationError

from ekko_server.errors import BlobNotFound, ConflictError, CorruptionError, StoreError
from ekko_server.models.documents import SHARDS, Document
from ekko_server.ports.storage import BlobStorePort
from ekko_server.security.codec import CorruptionSignal, open_sealed, seal
from ekko_server.store.cache import ShardCache

logger = logging.getLogger(__name__)


class ShardStore:
    def __init__(
        self,
        blob_store: BlobStorePort,
        key: bytes,
        cache: Optional[ShardCache] = None,
        registry: Optional[Dict[str, Type[Document]]] = None,
    ) -> None:
        self.blob_store = blob_store
        self.cache = cache if cache is not None else ShardCache()
        self.registry = registry if registry is not None else SHARDS
        self._key = key

    def __repr__(self) -> str:
        return f"ShardStore(blob_store={self.blob_store!r}, shards={sorted(self.registry)})"

    # ---------- read ----------

    def load(self, name: str, fresh: bool = False) -> Tuple[Document, Optional[str]]:
        """Return (document, version). `fresh=True` bypasses the cache."""
        model = self.registry[name]
        if not fresh:
            cached = self.cache.get(name)
            if cached is not None:
                return cached

        document, version = self._fetch(name, model)
        if document is None:
            document, version = self._heal(name, model, version)
        self.cache.put(name, document, version)
        return document.model_copy(deep=True), version

    def peek(self, name: str) -> Tuple[Document, Optional[str]]:
        """
        Read a shard straight from the blob store without caching or healing.
        Raises CorruptionError (with the reason) when the blob does not decode.
        """
        document, version, reason = self._decode(name, self.registry[name])
        if document is None:
            raise CorruptionError(f"{name}: {reason}", {"name": name, "version": version, "reason": reason})
        return document, version

    def _fetch(self, name: str, model: Type[Document]) -> Tuple[Optional[Document], Optional[str]]:
        """(document, version); document is None when the blob is corrupt."""
        document, version, reason = self._decode(name, model)
        if document is None:
            logger.warning("Shard %s: %s", name, reason)
        return document, version

    def _decode(self, name: str, model: Type[Document]) -> Tuple[Optional[Document], Optional[str], Optional[str]]:
        try:
            blob = self.blob_store.get(name)
        except BlobNotFound:
            return model(), None, None

        try:
            envelope = json.loads(blob.content.decode("utf-8"))
        except ValueError:
            return None, blob.version, "envelope is not JSON"

        plain = open_sealed(envelope, self._key)
        if isinstance(plain, CorruptionSignal):
            return None, blob.version, plain.reason

        try:
            return model.model_validate(plain), blob.version, None
        except ValidationError as exc:
            return None, blob.version, f"schema mismatch ({exc.error_count()} errors)"

    def _heal(self, name: str, model: Type[Document], version: Optional[str]) -> Tuple[Document, Optional[str]]:
        document = model()
        try:
            new_version = self._write(name, document, version, f"heal {name}")
            logger.warning("Shard %s was unreadable and has been reset", name)
            return document, new_version
        except ConflictError:
            # someone replaced the blob in the meantime; use what they wrote
            fetched, fetched_version = self._fetch(name, model)
            if fetched is None:
                return document, fetched_version
            return fetched, fetched_version

    # ---------- write ----------

    def save(
        self,
        name: str,
        document: Document,
        version: Optional[str],
        message: str,
        mutate: Optional[Callable[[Document], None]] = None,
    ) -> str:
        """
        Conditional write; returns the new version token.

        `mutate` is the change the caller applied to `document`. On a stale
        token the shard is reloaded and `mutate` is replayed on the fresh copy
        before the single retry, so another writer's committed change is kept.
        Without `mutate` the retry writes `document` as given.
        """
        try:
            try:
                new_version = self._write(name, document, version, message)
            except ConflictError:
                logger.warning("Shard %s: stale version, reloading and retrying once", name)
                self.cache.invalidate(name)
                fresh, fresh_version = self.load(name, fresh=True)
                if mutate is not None:
                    mutate(fresh)
                    document = fresh
                new_version = self._write(name, document, fresh_version, message)
        except StoreError:
            self.cache.invalidate(name)
            raise

        self.cache.put(name, document, new_version)
        return new_version

    def _write(self, name: str, document: Document, version: Optional[str], message: str) -> str:
        if not isinstance(document, self.registry[name]):
            raise TypeError(f"{name} expects {self.registry[name].__name__}, got {type(document).__name__}")
        sealed = seal(document.to_wire(), self._key)
        content = json.dumps(sealed).encode("utf-8")
        return self.blob_store.put(name, content, version, message)
