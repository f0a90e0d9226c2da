"""
Tests for the per-source history store.
"""

import threading

import pytest

from conftest import NOW, make_record
from trafficwatch.detection.history import HistoryStore


@pytest.fixture
def store():
    return HistoryStore(retention_sec=60.0)


def test_unknown_source_is_empty(store):
    assert store.window("203.0.113.9", NOW) == []


def test_records_kept_in_arrival_order(store):
    for i in range(3):
        store.append("a", make_record(timestamp=NOW + i, request_rate=i), NOW + i)
    window = store.window("a", NOW + 2)
    assert [r.request_rate for r in window] == [0, 1, 2]


def test_append_purges_expired_records(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    store.append("a", make_record(timestamp=NOW + 61), NOW + 61)
    assert [r.timestamp for r in store.window("a", NOW + 61)] == [NOW + 61]


def test_record_exactly_at_retention_edge_is_kept(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    store.append("a", make_record(timestamp=NOW + 60), NOW + 60)
    assert len(store.window("a", NOW + 60)) == 2


def test_purge_is_scoped_to_the_written_source(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    store.append("b", make_record(timestamp=NOW + 120), NOW + 120)
    assert len(store._history["a"]) == 1


def test_reads_never_return_expired_records(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    assert store.window("a", NOW + 61) == []


def test_sweep_drops_idle_sources(store):
    store.append("idle", make_record(timestamp=NOW), NOW)
    store.append("busy", make_record(timestamp=NOW + 100), NOW + 100)
    assert store.sweep(NOW + 100) == 1
    assert store.sources() == ["busy"]


def test_capacity_evicts_least_recently_seen():
    store = HistoryStore(retention_sec=60.0, max_sources=2)
    store.append("a", make_record(timestamp=NOW), NOW)
    store.append("b", make_record(timestamp=NOW + 1), NOW + 1)
    store.append("c", make_record(timestamp=NOW + 2), NOW + 2)
    assert sorted(store.sources()) == ["b", "c"]


def test_sweep_skips_source_held_by_a_thread(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    with store.lock("a"):
        entry = store._locks["a"]
        assert store.sweep(NOW + 120) == 0
        # The held lock is not replaced while in use
        assert store._locks["a"] is entry
    assert store.sweep(NOW + 120) == 1
    assert "a" not in store._locks


def test_capacity_never_evicts_source_in_use():
    store = HistoryStore(retention_sec=60.0, max_sources=1)
    store.append("a", make_record(timestamp=NOW), NOW)
    with store.lock("a"):
        store.append("b", make_record(timestamp=NOW + 1), NOW + 1)
    assert sorted(store.sources()) == ["a", "b"]


def test_lock_for_unknown_source_is_released(store):
    with store.lock("203.0.113.9"):
        assert "203.0.113.9" in store._locks
    assert "203.0.113.9" not in store._locks


def test_sweep_concurrent_with_new_sources():
    store = HistoryStore(retention_sec=1.0)
    errors = []

    def writer(prefix):
        try:
            for i in range(500):
                ip = f"{prefix}.{i}"
                with store.lock(ip):
                    store.append(ip, make_record(timestamp=NOW + i, source_ip=ip), NOW + i)
        except Exception as exc:
            errors.append(exc)

    def sweeper():
        try:
            for i in range(500):
                store.sweep(NOW + i)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(p,)) for p in ("10.1", "10.2")]
    threads.append(threading.Thread(target=sweeper))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []


def test_clear_forgets_everything(store):
    store.append("a", make_record(timestamp=NOW), NOW)
    store.clear()
    assert len(store) == 0
    assert store.window("a", NOW) == []
