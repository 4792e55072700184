"""Shared fixtures for doccache tests."""

import pytest

from doccache.cache.manager import CacheManager


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    """Create a fake clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path):
    """Cache directory path (not created)."""
    return tmp_path / "cache"


@pytest.fixture
def cache_manager(cache_dir, clock):
    """Create an initialized cache manager with a 1000 byte budget and 60s TTL."""
    manager = CacheManager(cache_dir, max_size=1000, ttl=60_000, clock=clock)
    manager.init()
    yield manager
    manager.close()


@pytest.fixture
def entry_files():
    """Return a helper listing entry file names in a directory (sidecar excluded)."""

    def _list(directory):
        return sorted(p.name for p in directory.iterdir() if p.name != ".stats")

    return _list
