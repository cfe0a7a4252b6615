"""Tests for queue persistence."""

import sqlite3

from playcast.server.database import Database
from playcast.server.queue_manager import PlaybackQueue, QueueItem
from playcast.server.queue_store import QueueStore


def p(name):
    return {"id": name, "url": f"https://example.com/{name}.mp3", "meta": {"n": name}}


class TestQueueStore:
    def test_round_trip(self, store):
        items = [QueueItem(payload=p("a"), inserted_at=1.5), QueueItem(payload=p("b"), inserted_at=2.5)]
        store.save(items)
        loaded = store.load()
        assert [i.payload for i in loaded] == [p("a"), p("b")]
        assert [i.inserted_at for i in loaded] == [1.5, 2.5]

    def test_save_replaces_previous_list(self, store):
        store.save([QueueItem(payload=p("a")), QueueItem(payload=p("b"))])
        store.save([QueueItem(payload=p("c"))])
        assert [i.payload_id for i in store.load()] == ["c"]

    def test_save_empty(self, store):
        store.save([QueueItem(payload=p("a"))])
        store.save([])
        assert store.load() == []

    def test_unreadable_row_skipped(self, db, store):
        store.save([QueueItem(payload=p("a"))])
        db.execute("INSERT INTO queue_items VALUES (1, 'b', '{not json', 1.0)")
        db.commit()
        assert [i.payload_id for i in store.load()] == ["a"]

    def test_failed_save_rolls_back(self, db, store):
        store.save([QueueItem(payload=p("a"))])
        duplicate = [QueueItem(payload=p("x")), QueueItem(payload=p("x"))]
        try:
            store.save(duplicate)
        except sqlite3.IntegrityError:
            pass
        assert [i.payload_id for i in store.load()] == ["a"]


class TestPersistentQueue:
    def test_mutations_are_saved(self, store):
        queue = PlaybackQueue(store)
        queue.insert_many([p("a"), p("b"), p("c")])
        queue.move(2, 0)
        queue.remove("a")
        assert [i.payload_id for i in store.load()] == ["c", "b"]

    def test_survives_restart(self, tmp_path):
        path = str(tmp_path / "queue.db")
        queue = PlaybackQueue(QueueStore(Database(path)))
        queue.insert_many([p("a"), p("b"), p("c")])
        queue.set_current(2)

        restored = PlaybackQueue(QueueStore(Database(path)))
        assert [i.payload_id for i in restored.items] == ["a", "b", "c"]
        assert [i.position_index for i in restored.items] == [0, 1, 2]
        assert restored.current_index is None

    def test_store_failure_keeps_mutation(self, store, monkeypatch, caplog):
        queue = PlaybackQueue(store)

        def broken(items):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "save", broken)
        assert queue.insert_at(p("a")) is True
        assert len(queue) == 1
        assert "Failed to persist queue" in caplog.text

    def test_load_failure_starts_empty(self, store, monkeypatch, caplog):
        def broken():
            raise sqlite3.DatabaseError("file is not a database")

        monkeypatch.setattr(store, "load", broken)
        queue = PlaybackQueue(store)
        assert len(queue) == 0
        assert "Failed to load queue" in caplog.text
