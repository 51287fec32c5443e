import pytest

from app.infrastructure.cache import CacheKind, CacheService, MemoryCache

pytestmark = pytest.mark.anyio("asyncio")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


TTLS = {"generic": 300, "transfers": 600, "profiles": 600, "friends": 600}


def test_value_is_served_until_ttl_then_expires():
    clock = FakeClock()
    cache = MemoryCache(ttls=TTLS, max_entries=10, clock=clock)

    cache.set(CacheKind.GENERIC, "k", {"v": 1}, ttl=5)
    clock.now += 4.999
    assert cache.get(CacheKind.GENERIC, "k") == {"v": 1}

    clock.now += 0.001
    assert cache.get(CacheKind.GENERIC, "k") is None
    assert cache.size(CacheKind.GENERIC) == 0


def test_default_ttl_comes_from_kind():
    clock = FakeClock()
    cache = MemoryCache(ttls=TTLS, max_entries=10, clock=clock)

    cache.set(CacheKind.GENERIC, "g", 1)
    cache.set(CacheKind.PROFILES, "p", 2)
    clock.now += 301

    assert cache.get(CacheKind.GENERIC, "g") is None
    assert cache.get(CacheKind.PROFILES, "p") == 2


def test_kinds_are_separate_namespaces():
    cache = MemoryCache(ttls=TTLS, max_entries=10, clock=FakeClock())

    cache.set(CacheKind.GENERIC, "same", "generic")
    cache.set(CacheKind.FRIENDS, "same", "friends")

    assert cache.get(CacheKind.GENERIC, "same") == "generic"
    assert cache.get(CacheKind.FRIENDS, "same") == "friends"
    assert cache.stats() == {"generic": 1, "transfers": 0, "profiles": 0, "friends": 1}


def test_oldest_insertion_is_evicted_at_capacity():
    cache = MemoryCache(ttls=TTLS, max_entries=2, clock=FakeClock())

    cache.set(CacheKind.GENERIC, "a", 1)
    cache.set(CacheKind.GENERIC, "b", 2)
    cache.set(CacheKind.GENERIC, "a", 3)  # rewrite makes "a" the newest
    cache.set(CacheKind.GENERIC, "c", 4)

    assert cache.get(CacheKind.GENERIC, "b") is None
    assert cache.get(CacheKind.GENERIC, "a") == 3
    assert cache.get(CacheKind.GENERIC, "c") == 4


def test_delete_and_clear():
    cache = MemoryCache(ttls=TTLS, max_entries=10, clock=FakeClock())
    cache.set(CacheKind.TRANSFERS, "x", 1)
    cache.set(CacheKind.PROFILES, "y", 2)

    assert cache.delete(CacheKind.TRANSFERS, "x") is True
    assert cache.delete(CacheKind.TRANSFERS, "x") is False

    cache.clear_all()
    assert cache.get(CacheKind.PROFILES, "y") is None


def test_generate_key_digests_long_keys():
    service = CacheService(MemoryCache(ttls=TTLS, max_entries=10, clock=FakeClock()))

    short = service.generate_key("getnftsforowner", "ethereum", {"b": 2, "a": 1}, pageKey="")
    assert short == 'getnftsforowner:ethereum:{"a": 1, "b": 2}:pageKey:'

    long_key = service.generate_key("zapper", "x" * 300)
    assert long_key.startswith("zapper:")
    assert len(long_key) == len("zapper:") + 64


@pytest.mark.anyio
async def test_get_or_set_calls_factory_once():
    service = CacheService(MemoryCache(ttls=TTLS, max_entries=10, clock=FakeClock()))
    calls = []

    async def factory():
        calls.append(1)
        return "value"

    assert await service.get_or_set(CacheKind.GENERIC, "k", factory) == "value"
    assert await service.get_or_set(CacheKind.GENERIC, "k", factory) == "value"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_cache_failures_degrade_to_misses():
    class BrokenCache(MemoryCache):
        def get(self, kind, key):
            raise RuntimeError("boom")

        def set(self, kind, key, value, ttl=None):
            raise RuntimeError("boom")

    service = CacheService(BrokenCache(ttls=TTLS, max_entries=10))

    assert await service.get(CacheKind.GENERIC, "k") is None
    assert await service.set(CacheKind.GENERIC, "k", 1) is False
