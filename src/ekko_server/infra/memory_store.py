# src/ekko_server/infra/memory_store.py
from __future__ import annotations

from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from ekko_server.errors import BlobNotFound, ConflictError
from ekko_server.ports.storage import Blob, BlobStorePort


class MemoryBlobStore(BlobStorePort):
    """
    Dev-only in-memory adapter (ephemeral).
    NOT for production. Use EKKO_STORAGE=github to select the remote backend.
    """

    def __init__(self) -> None:
        self._db: Dict[str, Tuple[bytes, str]] = {}
        self.commits: List[Tuple[str, str]] = []  # (name, message), in write order

    # --- Port methods ---
    def get(self, name: str) -> Blob:
        if name not in self._db:
            raise BlobNotFound(f"{name} not found", {"name": name})
        content, version = self._db[name]
        return Blob(content=content, version=version)

    def put(self, name: str, content: bytes, version: Optional[str], message: str) -> str:
        current = self._db.get(name)
        current_version = current[1] if current else None
        if version != current_version:
            raise ConflictError(f"{name} version mismatch", {"name": name})
        new_version = uuid4().hex
        self._db[name] = (bytes(content), new_version)
        self.commits.append((name, message))
        return new_version

    # --- Dev helpers ---
    def names(self) -> List[str]:
        return sorted(self._db.keys())

    def raw(self, name: str) -> bytes:
        return self.get(name).content

    def overwrite(self, name: str, content: bytes) -> str:
        """Replace a blob unconditionally (simulates another writer)."""
        new_version = uuid4().hex
        self._db[name] = (bytes(content), new_version)
        return new_version
