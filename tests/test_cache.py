"""Tests for signalforge.market.cache — TTL indicator cache."""

import pytest

from signalforge.market.cache import IndicatorCache, make_key
from signalforge.market.models import OHLCVSeries


class _FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestMakeKey:
    def test_parameter_order_irrelevant(self):
        a = make_key("EURUSD", "abc", "rsi", {"period": 14, "source": "close"})
        b = make_key("EURUSD", "abc", "rsi", {"source": "close", "period": 14})
        assert a == b

    def test_fingerprint_distinguishes(self):
        assert make_key("EURUSD", "abc", "rsi", {}) != make_key("EURUSD", "abd", "rsi", {})

    def test_uses_series_fingerprint(self):
        same = OHLCVSeries(close=[1.0, 2.0, 3.0])
        other = OHLCVSeries(close=[1.0, 2.0, 4.0])
        assert same.fingerprint == OHLCVSeries(close=[1.0, 2.0, 3.0]).fingerprint
        assert same.fingerprint != other.fingerprint
        assert same.fingerprint != same.window(2).fingerprint


class TestIndicatorCache:
    def test_put_and_get(self):
        cache = IndicatorCache()
        cache.put("k", 1)
        assert cache.get("k") == 1
        assert len(cache) == 1

    def test_miss(self):
        assert IndicatorCache().get("nope") is None

    def test_expiry(self):
        clock = _FakeClock()
        cache = IndicatorCache(ttl_seconds=10, clock=clock)
        cache.put("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_clear(self):
        cache = IndicatorCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_invalid_ttl(self, ttl):
        with pytest.raises(ValueError):
            IndicatorCache(ttl_seconds=ttl)

    @pytest.mark.parametrize("bound", [0, -5])
    def test_invalid_max_entries(self, bound):
        with pytest.raises(ValueError):
            IndicatorCache(max_entries=bound)


class TestBoundedGrowth:
    def test_put_purges_expired_entries(self):
        clock = _FakeClock()
        cache = IndicatorCache(ttl_seconds=10, clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        clock.now = 5.0
        cache.put("c", 3)
        clock.now = 12.0
        cache.put("d", 4)
        # a and b expired at 10; c is still live until 15
        assert len(cache) == 2
        assert cache.get("c") == 3
        assert cache.get("d") == 4

    def test_oldest_entry_evicted_over_bound(self):
        cache = IndicatorCache(max_entries=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_reinsert_refreshes_position(self):
        cache = IndicatorCache(max_entries=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("a", 10)
        cache.put("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 10

    def test_reinsert_refreshes_timestamp(self):
        clock = _FakeClock()
        cache = IndicatorCache(ttl_seconds=10, clock=clock)
        cache.put("a", 1)
        clock.now = 8.0
        cache.put("a", 2)
        clock.now = 15.0
        assert cache.get("a") == 2
