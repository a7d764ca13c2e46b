import threading
import time

from hatchsql.cache_stats import StatsCollector


def test_record_hit():
    collector = StatsCollector()
    for _ in range(5):
        collector.record_hit()
    stats = collector.get_stats()
    assert stats.hits == 5
    assert stats.misses == 0
    assert stats.evictions == 0


def test_record_miss():
    collector = StatsCollector()
    for _ in range(3):
        collector.record_miss()
    stats = collector.get_stats()
    assert stats.hits == 0
    assert stats.misses == 3
    assert stats.evictions == 0


def test_record_eviction():
    collector = StatsCollector()
    for _ in range(2):
        collector.record_eviction()
    stats = collector.get_stats()
    assert stats.hits == 0
    assert stats.misses == 0
    assert stats.evictions == 2


def test_update_size():
    collector = StatsCollector()
    for size in (100, 200, 300):
        collector.update_size(size)
    assert collector.get_stats().size == 300


def test_hit_rate():
    collector = StatsCollector()
    assert collector.hit_rate() == 0.0
    collector.record_hit()
    collector.record_hit()
    assert collector.hit_rate() == 1.0
    collector.record_miss()
    collector.record_miss()
    assert collector.hit_rate() == 0.5

    collector = StatsCollector()
    collector.record_miss()
    collector.record_miss()
    assert collector.hit_rate() == 0.0


def test_concurrent_updates():
    collector = StatsCollector()

    def work():
        collector.record_hit()
        collector.record_miss()
        collector.record_eviction()
        collector.update_size(100)

    threads = [threading.Thread(target=work) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stats = collector.get_stats()
    assert stats.hits == 10
    assert stats.misses == 10
    assert stats.evictions == 10
    assert stats.size == 100


def test_last_updated_advances():
    collector = StatsCollector()
    initial = collector.get_stats()
    time.sleep(0.05)
    collector.record_hit()
    updated = collector.get_stats()
    assert updated.last_updated > initial.last_updated


def test_snapshot_is_not_affected_by_later_updates():
    collector = StatsCollector()
    collector.record_hit()
    snapshot = collector.get_stats()
    collector.record_hit()
    assert snapshot.hits == 1
    assert collector.get_stats().hits == 2