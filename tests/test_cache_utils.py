"""Tests for utils/cache.py — lightweight TTL cache used for the summary card."""
import threading
import time

from enforcement.events import CASE_CREATED, Event, EventBus
from utils.cache import TTLCache


class TestTTLCache:
    def test_basic_set_get(self):
        cache = TTLCache()
        cache.set(("offender_summary", None), {"total_count": 3})
        assert cache.get(("offender_summary", None)) == {"total_count": 3}

    def test_miss_returns_none(self):
        assert TTLCache().get(("offender_summary", "hse")) is None

    def test_ttl_expiry(self):
        cache = TTLCache(ttl_seconds=0.05)
        cache.set("summary", 1)
        assert cache.get("summary") == 1
        time.sleep(0.1)
        assert cache.get("summary") is None

    def test_clear_drops_entries_and_counters(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        cache.clear()
        assert cache.stats() == {"hits": 0, "misses": 0, "invalidations": 0, "size": 0}
        assert cache.get("a") is None

    def test_stats_tracks_hits_misses(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.get("k")
        cache.get("nope")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_full_cache_evicts_soonest_expiry(self):
        cache = TTLCache(maxsize=2, ttl_seconds=60)
        cache.set("first", 1)
        time.sleep(0.01)
        cache.set("second", 2)
        cache.set("third", 3)
        assert cache.get("first") is None
        assert cache.get("second") == 2
        assert cache.get("third") == 3

    def test_overwrite_does_not_evict(self):
        cache = TTLCache(maxsize=1)
        cache.set("k", "old")
        cache.set("k", "new")
        assert cache.get("k") == "new"

    def test_delete(self):
        cache = TTLCache()
        cache.set("k", "v")
        cache.delete("k")
        cache.delete("never-set")
        assert cache.get("k") is None

    def test_thread_safety(self):
        cache = TTLCache(maxsize=100)
        errors = []

        def worker():
            try:
                for i in range(50):
                    cache.set(f"k{i}", i)
                    cache.get(f"k{i}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert not errors


class TestChangeFeedInvalidation:
    def test_new_record_clears_cache(self):
        bus = EventBus()
        cache = TTLCache(invalidate_on=bus.subscribe(CASE_CREATED))
        cache.set(("offender_summary", None), {"total_count": 3})
        cache.set(("offender_summary", "hse"), {"total_count": 2})
        bus.publish(CASE_CREATED, Event(CASE_CREATED, "o1", "c1"))
        assert cache.get(("offender_summary", "hse")) is None
        assert cache.stats()["size"] == 0
        assert cache.stats()["invalidations"] == 1

    def test_no_changes_keeps_entries(self):
        bus = EventBus()
        cache = TTLCache(invalidate_on=bus.subscribe(CASE_CREATED))
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert cache.get("k") == "v"
        assert cache.stats()["invalidations"] == 0

    def test_changes_before_first_entry_are_discarded(self):
        bus = EventBus()
        cache = TTLCache(invalidate_on=bus.subscribe(CASE_CREATED))
        bus.publish(CASE_CREATED, Event(CASE_CREATED, "o1", "c1"))
        assert cache.get("k") is None
        cache.set("k", "v")
        assert cache.get("k") == "v"

    def test_bounded_feed_still_invalidates(self):
        bus = EventBus()
        feed = bus.subscribe(CASE_CREATED, maxsize=1)
        cache = TTLCache(invalidate_on=feed)
        cache.set(("offender_summary", None), {"total_count": 3})
        for i in range(500):
            bus.publish(CASE_CREATED, Event(CASE_CREATED, "o1", f"c{i}"))
        assert feed.dropped == 499
        assert cache.get(("offender_summary", None)) is None
        assert cache.stats()["invalidations"] == 1
        cache.set(("offender_summary", None), {"total_count": 503})
        assert cache.get(("offender_summary", None)) == {"total_count": 503}
