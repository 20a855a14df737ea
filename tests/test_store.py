"""Tests for history store module."""

import pytest
import threading
from datetime import datetime, timedelta, timezone

from diskwatch.store import HistoryStore
from diskwatch.models import Entry, EntryClass, EventKind, Fingerprint
from diskwatch.exceptions import StoreError, StoreUnavailableError, StoreWriteError


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_entry(path, kind=EventKind.ADDED, fp="f1", at=None, entry_class=EntryClass.FILE):
    return Entry(
        path=path,
        entry_class=entry_class,
        fingerprint=Fingerprint(fp),
        event_kind=kind,
        observed_at=at or T0,
    )


class TestHistoryStore:
    """Tests for HistoryStore class."""

    @pytest.fixture
    def store(self, tmp_path):
        store = HistoryStore(tmp_path / "test.db")
        yield store
        store.close()

    def test_create_store(self, tmp_path):
        db_path = tmp_path / "test.db"
        store = HistoryStore(db_path)
        assert db_path.exists()
        assert store.count() == 0
        store.close()

    def test_unavailable_store(self, tmp_path):
        with pytest.raises(StoreUnavailableError):
            HistoryStore(tmp_path / "missing-dir" / "test.db")

    def test_append_assigns_seq(self, store):
        first = store.append(make_entry("/a"))
        second = store.append(make_entry("/b"))

        assert first.seq is not None
        assert second.seq > first.seq
        assert store.count() == 2

    def test_append_roundtrip(self, store):
        observed = datetime(2024, 3, 4, 5, 6, 7, 123456, tzinfo=timezone(timedelta(hours=9)))
        entry = Entry(
            path="/a",
            entry_class=EntryClass.FOLDER,
            fingerprint=Fingerprint("p", "s"),
            event_kind=EventKind.DELETED,
            observed_at=observed,
        )
        store.append(entry)

        loaded = store.latest("/a")
        assert loaded.entry_class == EntryClass.FOLDER
        assert loaded.fingerprint == Fingerprint("p", "s")
        assert loaded.event_kind == EventKind.DELETED
        assert loaded.observed_at == observed
        assert loaded.observed_at.utcoffset() == timedelta(hours=9)

    def test_record(self, store):
        entry = store.record("/a", EntryClass.FILE, Fingerprint("x"), EventKind.ADDED)
        assert entry.seq is not None
        assert entry.observed_at.tzinfo is not None
        assert store.latest("/a") == entry

    def test_latest_unknown(self, store):
        assert store.latest("/nothing") is None

    def test_latest_wins_by_time_not_insertion(self, store):
        t1, t2, t3 = T0, T0 + timedelta(seconds=1), T0 + timedelta(seconds=2)
        store.append(make_entry("/a", EventKind.DELETED, at=t3))
        store.append(make_entry("/a", EventKind.ADDED, at=t1))
        store.append(make_entry("/a", EventKind.CHANGED, fp="f2", at=t2))

        latest = store.latest("/a")
        assert latest.event_kind == EventKind.DELETED
        assert latest.observed_at == t3

    def test_latest_ties_broken_by_insertion_order(self, store):
        store.append(make_entry("/a", EventKind.ADDED, fp="f1", at=T0))
        store.append(make_entry("/a", EventKind.CHANGED, fp="f2", at=T0))

        latest = store.latest("/a")
        assert latest.event_kind == EventKind.CHANGED
        assert latest.fingerprint == Fingerprint("f2")

    def test_latest_reflects_earlier_append(self, store):
        store.append(make_entry("/a"))
        assert store.latest("/a").event_kind == EventKind.ADDED
        store.append(make_entry("/a", EventKind.DELETED, at=T0 + timedelta(seconds=1)))
        assert store.latest("/a").event_kind == EventKind.DELETED

    def test_latest_per_path(self, store):
        store.append(make_entry("/a", EventKind.ADDED, at=T0))
        store.append(make_entry("/b", EventKind.ADDED, at=T0 + timedelta(seconds=1)))
        store.append(make_entry("/a", EventKind.CHANGED, fp="f2", at=T0 + timedelta(seconds=2)))
        store.append(make_entry("/c", EventKind.ADDED, at=T0 + timedelta(seconds=3)))
        store.append(make_entry("/b", EventKind.DELETED, at=T0 + timedelta(seconds=4)))

        latest = store.latest_per_path()

        assert [e.path for e in latest] == ["/b", "/c", "/a"]
        assert [e.event_kind for e in latest] == [
            EventKind.DELETED,
            EventKind.ADDED,
            EventKind.CHANGED,
        ]

    def test_latest_per_path_empty(self, store):
        assert store.latest_per_path() == []

    def test_all_oldest_first(self, store):
        store.append(make_entry("/b", at=T0 + timedelta(seconds=5)))
        store.append(make_entry("/a", at=T0))
        store.append(make_entry("/c", at=T0 + timedelta(seconds=1)))

        assert [e.path for e in store.all()] == ["/a", "/c", "/b"]

    def test_history_of_one_path(self, store):
        store.append(make_entry("/a", EventKind.ADDED, at=T0))
        store.append(make_entry("/b", EventKind.ADDED, at=T0))
        store.append(make_entry("/a", EventKind.DELETED, at=T0 + timedelta(seconds=1)))

        trail = store.history("/a")
        assert [e.event_kind for e in trail] == [EventKind.ADDED, EventKind.DELETED]

    def test_reset(self, store):
        store.append(make_entry("/a"))
        store.append(make_entry("/b"))

        removed = store.reset()

        assert removed == 2
        assert store.count() == 0
        assert store.latest_per_path() == []
        assert store.latest("/a") is None

    def test_persists_across_reopen(self, tmp_path):
        db_path = tmp_path / "test.db"
        with HistoryStore(db_path) as store:
            store.append(make_entry("/a"))

        with HistoryStore(db_path) as store:
            assert store.count() == 1
            assert store.latest("/a").event_kind == EventKind.ADDED

    def test_custom_table_name(self, tmp_path):
        db_path = tmp_path / "test.db"
        with HistoryStore(db_path, table_name="events") as events, \
                HistoryStore(db_path, table_name="other") as other:
            events.append(make_entry("/a"))
            assert events.count() == 1
            assert other.count() == 0

    def test_closed_store_raises(self, tmp_path):
        store = HistoryStore(tmp_path / "test.db")
        store.close()

        with pytest.raises(StoreError, match="closed"):
            store.append(make_entry("/a"))
        with pytest.raises(StoreError):
            store.latest("/a")

    def test_close_twice(self, tmp_path):
        store = HistoryStore(tmp_path / "test.db")
        store.close()
        store.close()

    def test_write_failure_is_store_write_error(self, store):
        conn = store._get_connection()
        conn.execute(f"DROP TABLE {store.table_name}")

        with pytest.raises(StoreWriteError):
            store.append(make_entry("/a"))

    def test_concurrent_appends(self, store):
        errors = []

        def writer(n):
            try:
                for i in range(20):
                    store.append(make_entry(f"/t{n}/{i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.count() == 80
        assert len({e.seq for e in store.all()}) == 80
