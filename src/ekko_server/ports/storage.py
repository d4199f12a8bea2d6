# src/ekko_server/ports/storage.py
"""
BlobStorePort: the hexagonal 'port' interface for versioned object stores.

The remote store keeps one opaque blob per name plus a version token and
accepts a write only when the caller presents the current token
(single-object compare-and-swap). Everything above this port is
backend-agnostic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Blob:
    content: bytes
    version: str


class BlobStorePort(Protocol):
    """
    Contract that all blob adapters must implement.

      - get  -> Blob or raise BlobNotFound
      - put  -> new version token; `version=None` means "create", and is a
                conflict if the object already exists. Raises ConflictError
                on a stale token.
      - both raise UpstreamUnavailable on transport/upstream failures
    """

    def get(self, name: str) -> Blob:
        ...

    def put(self, name: str, content: bytes, version: Optional[str], message: str) -> str:
        ...
