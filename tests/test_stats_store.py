"""Tests for the shared redirect counters."""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from redirector.exceptions import StatsPersistenceError
from redirector.models import StatsStore

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def failing_write(path, text):
    raise OSError("disk full")


def test_new_store_is_empty(store):
    view = store.snapshot()
    assert view.total_redirects == 0
    assert view.paths == {}


def test_record_redirect_counts_per_path(store):
    store.record_redirect("/a")
    store.record_redirect("/a")
    store.record_redirect("/b")

    view = store.snapshot()
    assert view.total_redirects == 3
    assert view.paths == {"/a": 2, "/b": 1}


def test_record_redirect_persists(store):
    store.record_redirect("/docs/readme")

    data = json.loads(store.path.read_text())
    assert data["total_redirects"] == 1
    assert data["paths"] == {"/docs/readme": 1}
    assert "start_time" in data


def test_persisted_file_is_indented(store):
    store.record_redirect("/a")
    text = store.path.read_text()
    assert '\n  "total_redirects": 1' in text
    assert '\n    "/a": 1' in text


def test_concurrent_records_lose_nothing(store):
    workers, per_worker = 8, 25
    barrier = threading.Barrier(workers)

    def hit(n):
        barrier.wait()
        for i in range(per_worker):
            store.record_redirect(f"/p{(n + i) % 3}")

    threads = [threading.Thread(target=hit, args=(n,)) for n in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    view = store.snapshot()
    assert view.total_redirects == workers * per_worker
    assert sum(view.paths.values()) == workers * per_worker

    reloaded = StatsStore(store.path)
    reloaded.load()
    assert reloaded.snapshot().paths == view.paths


def test_snapshot_is_idempotent(store):
    store.record_redirect("/a")
    assert store.snapshot() == store.snapshot()


def test_snapshot_is_detached_from_later_updates(store):
    store.record_redirect("/a")
    view = store.snapshot()

    store.record_redirect("/a")
    store.record_redirect("/b")

    assert view.total_redirects == 1
    assert view.paths == {"/a": 1}


def test_reset_clears_counts_and_moves_start_time(store):
    store.record_redirect("/a")
    before = store.snapshot().start_time

    store.reset()

    view = store.snapshot()
    assert view.total_redirects == 0
    assert view.paths == {}
    assert view.start_time > before
    assert json.loads(store.path.read_text())["total_redirects"] == 0


def test_reset_start_time_strictly_later_with_frozen_clock(data_dir):
    store = StatsStore(data_dir / "stats.json", clock=lambda: FIXED_TIME)

    store.reset()

    assert store.snapshot().start_time == FIXED_TIME + timedelta(microseconds=1)


def test_round_trip_through_file(data_dir):
    first = StatsStore(data_dir / "stats.json", clock=lambda: FIXED_TIME)
    first.record_redirect("/x")
    first.record_redirect("/y")
    first.record_redirect("/x")

    second = StatsStore(data_dir / "stats.json")
    second.load()

    assert second.snapshot() == first.snapshot()


def test_load_missing_file_keeps_empty_state(store, caplog):
    store.load()
    assert store.snapshot().total_redirects == 0
    assert caplog.text == ""


def test_load_corrupt_file_keeps_empty_state(store, caplog):
    store.path.write_text("{\"total_redirects\": ")

    store.load()

    assert store.snapshot().total_redirects == 0
    assert "Continuing with default stats" in caplog.text


def test_load_rejects_negative_counts(store, caplog):
    store.path.write_text(json.dumps({
        "total_redirects": -1,
        "paths": {"/a": -1},
        "start_time": FIXED_TIME.isoformat(),
    }))

    store.load()

    assert store.snapshot().paths == {}
    assert "Continuing with default stats" in caplog.text


def test_load_recomputes_inconsistent_total(store, caplog):
    store.path.write_text(json.dumps({
        "total_redirects": 10,
        "paths": {"/a": 2, "/b": 3},
        "start_time": FIXED_TIME.isoformat(),
    }))

    store.load()

    view = store.snapshot()
    assert view.total_redirects == 5
    assert view.start_time == FIXED_TIME
    assert "using 5" in caplog.text


def test_load_accepts_naive_start_time(store):
    store.path.write_text(json.dumps({
        "total_redirects": 0,
        "paths": {},
        "start_time": "2024-01-02T03:04:05",
    }))

    store.load()
    store.reset()

    assert store.snapshot().start_time > FIXED_TIME


def test_persistence_failure_keeps_increment(store, monkeypatch):
    monkeypatch.setattr("redirector.models.write_text_atomic", failing_write)

    with pytest.raises(StatsPersistenceError):
        store.record_redirect("/a")

    assert store.snapshot().paths == {"/a": 1}


def test_next_successful_save_includes_unsaved_delta(store, monkeypatch):
    monkeypatch.setattr("redirector.models.write_text_atomic", failing_write)
    with pytest.raises(StatsPersistenceError):
        store.record_redirect("/a")
    monkeypatch.undo()

    store.record_redirect("/b")

    data = json.loads(store.path.read_text())
    assert data["total_redirects"] == 2
    assert data["paths"] == {"/a": 1, "/b": 1}


def test_reset_failure_does_not_revert(store, monkeypatch):
    store.record_redirect("/a")
    monkeypatch.setattr("redirector.models.write_text_atomic", failing_write)

    with pytest.raises(StatsPersistenceError):
        store.reset()

    assert store.snapshot().total_redirects == 0


def test_save_writes_current_state(store):
    store.save()
    assert json.loads(store.path.read_text())["paths"] == {}
