# src/ekko_server/infra/providers.py
from __future__ import annotations

import logging
from typing import Optional

from ekko_server.config import settings
from ekko_server.core.coordinator import ContentCoordinator
from ekko_server.ports.storage import BlobStorePort
from ekko_server.security.codec import generate_key, load_key
from ekko_server.store.cache import ShardCache
from ekko_server.store.shard_store import ShardStore

from .github_store import GitHubBlobStore
from .memory_store import MemoryBlobStore

logger = logging.getLogger(__name__)

# singletons per-process
_blob_store: Optional[BlobStorePort] = None
_shard_store: Optional[ShardStore] = None
_coordinator: Optional[ContentCoordinator] = None


def get_blob_store() -> BlobStorePort:
    """
    Adapter selector. Default: in-memory for dev.
    Set EKKO_STORAGE=github to persist shards through the GitHub contents API.
    """
    global _blob_store
    if _blob_store is not None:
        return _blob_store

    backend = (settings.STORAGE_BACKEND or "memory").lower()
    if backend == "github":
        missing = [
            name
            for name, value in (
                ("GITHUB_USERNAME", settings.GITHUB_USERNAME),
                ("GITHUB_REPO", settings.GITHUB_REPO),
                ("GITHUB_TOKEN", settings.GITHUB_TOKEN),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"github storage requires {', '.join(missing)}")
        _blob_store = GitHubBlobStore(
            user=settings.GITHUB_USERNAME,
            repo=settings.GITHUB_REPO,
            token=settings.GITHUB_TOKEN,
            branch=settings.GITHUB_BRANCH,
            data_dir=settings.DATA_DIR,
            api=settings.GITHUB_API,
            timeout=settings.HTTP_TIMEOUT,
        )
    elif backend in ("", "memory", "mem", "inmemory", "in-memory"):
        _blob_store = MemoryBlobStore()
    else:
        raise RuntimeError(f"unknown storage backend: {backend}")
    return _blob_store


def _resolve_key(backend: str) -> bytes:
    if settings.DATA_ENCRYPTION_KEY:
        return load_key(settings.DATA_ENCRYPTION_KEY)
    if backend == "github":
        raise RuntimeError("github storage requires DATA_ENCRYPTION_KEY")
    logger.warning("DATA_ENCRYPTION_KEY not set; using an ephemeral key for in-memory storage")
    return generate_key()


def get_shard_store() -> ShardStore:
    global _shard_store
    if _shard_store is None:
        blob_store = get_blob_store()
        key = _resolve_key((settings.STORAGE_BACKEND or "memory").lower())
        _shard_store = ShardStore(blob_store, key, cache=ShardCache(ttl=settings.CACHE_TTL))
    return _shard_store


def get_coordinator() -> ContentCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = ContentCoordinator(
            get_shard_store(),
            trending_size=settings.TRENDING_SIZE,
            suggestion_limit=settings.SUGGESTION_LIMIT,
        )
    return _coordinator


def close_providers() -> None:
    """Release the blob store's connections and forget the singletons."""
    global _blob_store, _shard_store, _coordinator
    close = getattr(_blob_store, "close", None)
    if close is not None:
        close()
    _blob_store = _shard_store = _coordinator = None
