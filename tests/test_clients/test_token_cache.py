"""Tests for the bearer credential cache."""

from concurrent.futures import ThreadPoolExecutor

from varfed.clients.token_cache import TokenCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTokenCache:
    """Tests for TokenCache get/put semantics."""

    def test_get_missing_key_returns_none(self):
        cache = TokenCache()
        assert cache.get("cmhToken") is None

    def test_put_then_get(self):
        cache = TokenCache(clock=FakeClock())
        cache.put("cmhToken", "abc", ttl=60)
        assert cache.get("cmhToken") == "abc"

    def test_entry_expires_after_ttl(self):
        """Expired entries read as absent and are evicted."""
        clock = FakeClock()
        cache = TokenCache(clock=clock)
        cache.put("cmhToken", "abc", ttl=60)

        clock.now += 59.9
        assert cache.get("cmhToken") == "abc"

        clock.now += 0.1
        assert cache.get("cmhToken") is None
        assert len(cache) == 0

    def test_non_positive_ttl_is_not_stored(self):
        cache = TokenCache(clock=FakeClock())
        cache.put("expired", "abc", ttl=0)
        cache.put("negative", "def", ttl=-5)

        assert cache.get("expired") is None
        assert cache.get("negative") is None
        assert len(cache) == 0

    def test_put_overwrites(self):
        cache = TokenCache(clock=FakeClock())
        cache.put("cmhToken", "old", ttl=60)
        cache.put("cmhToken", "new", ttl=60)
        assert cache.get("cmhToken") == "new"

    def test_keys_are_independent(self):
        clock = FakeClock()
        cache = TokenCache(clock=clock)
        cache.put("cmhToken", "a", ttl=10)
        cache.put("testNodeToken", "b", ttl=100)

        clock.now += 50
        assert cache.get("cmhToken") is None
        assert cache.get("testNodeToken") == "b"

    def test_clear(self):
        cache = TokenCache(clock=FakeClock())
        cache.put("cmhToken", "abc", ttl=60)
        cache.clear()
        assert cache.get("cmhToken") is None

    def test_concurrent_access(self):
        """Concurrent writers and readers never corrupt the map."""
        cache = TokenCache()

        def work(i: int) -> str | None:
            key = f"provider-{i % 4}"
            cache.put(key, f"token-{i}", ttl=60)
            return cache.get(key)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(work, range(200)))

        assert all(r is not None and r.startswith("token-") for r in results)
        assert len(cache) == 4
