# tests/conftest.py
import json
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from ekko_server.core.coordinator import ContentCoordinator
from ekko_server.infra.memory_store import MemoryBlobStore
from ekko_server.infra.providers import get_coordinator
from ekko_server.main import app
from ekko_server.security.codec import seal
from ekko_server.store.cache import ShardCache
from ekko_server.store.shard_store import ShardStore

KEY = bytes(range(32))


# ------------------ Helpers ------------------

class FakeClock:
    """Settable wall clock, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyBlobStore(MemoryBlobStore):
    """MemoryBlobStore that raises queued errors on matching puts."""

    def __init__(self):
        super().__init__()
        self.put_failures: List[Tuple[Optional[str], Exception]] = []
        self.put_attempts: List[str] = []

    def fail_put(self, name: Optional[str], exc: Exception, times: int = 1) -> None:
        self.put_failures.extend([(name, exc)] * times)

    def put(self, name, content, version, message):
        self.put_attempts.append(name)
        for i, (target, exc) in enumerate(self.put_failures):
            if target is None or target == name:
                del self.put_failures[i]
                raise exc
        return super().put(name, content, version, message)


def sealed_bytes(document, key: bytes = KEY) -> bytes:
    return json.dumps(seal(document, key)).encode("utf-8")


# ------------------ Fixtures ------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key():
    return KEY


@pytest.fixture
def blobs():
    return FlakyBlobStore()


@pytest.fixture
def shards(blobs, key, clock):
    return ShardStore(blobs, key, cache=ShardCache(ttl=10, clock=clock))


@pytest.fixture
def coordinator(shards, clock):
    return ContentCoordinator(shards, clock=clock)


# ------------------ Per-test HTTP wiring ------------------

@pytest.fixture(autouse=True)
def _override_coordinator():
    """
    Give each test a fresh in-memory coordinator by overriding the app dependency.
    """
    fresh = ContentCoordinator(ShardStore(MemoryBlobStore(), KEY))
    app.dependency_overrides[get_coordinator] = lambda: fresh
    try:
        yield
    finally:
        app.dependency_overrides.clear()


# Module-level TestClient, importable as `from tests.conftest import client`
client = TestClient(app)
