# src/ekko_server/errors.py
"""
Error taxonomy shared by the blob adapters, the shard store and the coordinator.

Each error carries a stable machine-readable `code` which the coordinator
copies into the `error.code` of an OperationResult.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StoreError(Exception):
    code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConflictError(StoreError):
    """Version token was stale (object changed since it was read)."""

    code = "conflict"


class CorruptionError(StoreError):
    """A document could not be sealed or decoded."""

    code = "corrupt"


class NotFoundError(StoreError):
    """Referenced entity does not exist."""

    code = "not_found"


class BlobNotFound(NotFoundError):
    """The named object does not exist in the blob store."""


class UpstreamUnavailable(StoreError):
    """Transport failure or unexpected answer from the blob store."""

    code = "unavailable"
