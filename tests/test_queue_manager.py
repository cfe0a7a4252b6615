"""Tests for PlaybackQueue."""

import random

import pytest

from playcast.server.queue_manager import PlaybackQueue, QueueItem, payload_identity


def p(name):
    return {"id": name, "url": f"https://example.com/{name}.mp4", "title": name.upper()}


def ids(queue):
    return [item.payload_id for item in queue.items]


@pytest.fixture
def abc(queue):
    queue.insert_many([p("a"), p("b"), p("c")])
    return queue


class TestPayloadIdentity:
    def test_id_preferred(self):
        assert payload_identity({"id": 7, "url": "u"}) == "7"

    def test_url_fallback(self):
        assert payload_identity({"url": "https://x"}) == "https://x"
        assert payload_identity({"id": "", "url": "https://x"}) == "https://x"

    def test_no_identity(self):
        assert payload_identity({"title": "t"}) is None
        assert payload_identity("not a dict") is None


class TestInsert:
    def test_append(self, queue):
        assert queue.insert_at(p("a")) is True
        assert queue.insert_at(p("b")) is True
        assert ids(queue) == ["a", "b"]
        assert [i.position_index for i in queue.items] == [0, 1]
        assert queue.current_index is None

    def test_insert_at_index(self, abc):
        abc.insert_at(p("x"), 1)
        assert ids(abc) == ["a", "x", "b", "c"]

    def test_out_of_range_appends(self, abc):
        abc.insert_at(p("x"), 99)
        abc.insert_at(p("y"), -1)
        assert ids(abc) == ["a", "b", "c", "x", "y"]

    def test_duplicate_is_noop(self, abc):
        assert abc.insert_at(p("b"), 0) is False
        assert ids(abc) == ["a", "b", "c"]

    def test_payload_without_identity(self, queue):
        assert queue.insert_at({"title": "nothing"}) is False
        assert len(queue) == 0

    def test_insert_before_pointer_shifts_it(self, abc):
        abc.set_current(1)
        abc.insert_at(p("x"), 0)
        assert abc.current().payload_id == "b"
        assert abc.current_index == 2

    def test_insert_after_pointer(self, abc):
        abc.set_current(1)
        abc.insert_at(p("x"), 2)
        assert abc.current_index == 1

    def test_insert_many_skips_duplicates(self, abc):
        assert abc.insert_many([p("c"), p("d"), p("d"), {"title": "x"}]) == 1
        assert ids(abc) == ["a", "b", "c", "d"]

    def test_payload_is_copied(self, queue):
        payload = p("a")
        queue.insert_at(payload)
        payload["title"] = "changed"
        assert queue.items[0].payload["title"] == "A"


class TestRemove:
    def test_remove_before_pointer(self, abc):
        abc.set_current(1)
        assert abc.remove("a") is True
        assert ids(abc) == ["b", "c"]
        assert abc.current_index == 0
        assert abc.current().payload_id == "b"

    def test_remove_after_pointer(self, abc):
        abc.set_current(1)
        abc.remove("c")
        assert abc.current_index == 1

    def test_remove_current_moves_to_next(self, abc):
        abc.set_current(1)
        abc.remove("b")
        assert abc.current().payload_id == "c"

    def test_remove_current_last_item(self, abc):
        abc.set_current(2)
        abc.remove("c")
        assert abc.current_index == 1
        assert abc.current().payload_id == "b"

    def test_remove_only_item(self, queue):
        queue.insert_at(p("a"))
        queue.set_current(0)
        queue.remove("a")
        assert queue.current_index is None
        assert queue.current() is None

    def test_remove_missing(self, abc):
        assert abc.remove("zzz") is False
        assert len(abc) == 3


class TestMove:
    def test_move_forward(self, abc):
        assert abc.move(0, 2) is True
        assert ids(abc) == ["b", "c", "a"]
        assert [i.position_index for i in abc.items] == [0, 1, 2]

    def test_move_backward(self, abc):
        abc.move(2, 0)
        assert ids(abc) == ["c", "a", "b"]

    def test_move_clamps_destination(self, abc):
        abc.move(0, 50)
        assert ids(abc) == ["b", "c", "a"]

    def test_bad_source_is_noop(self, abc):
        assert abc.move(7, 0) is False
        assert abc.move(-1, 0) is False
        assert ids(abc) == ["a", "b", "c"]

    def test_same_position_is_noop(self, abc):
        assert abc.move(1, 1) is False

    @pytest.mark.parametrize("src,dst", [(0, 2), (2, 0), (1, 0), (1, 2), (0, 1), (2, 1)])
    def test_pointer_follows_identity(self, abc, src, dst):
        for current in range(3):
            abc.set_current(current)
            before = abc.current().payload_id
            abc.move(src, dst)
            assert abc.current().payload_id == before
            abc.move(dst, src)

    def test_move_to_top_and_bottom(self, abc):
        assert abc.move_to_top("c") is True
        assert ids(abc) == ["c", "a", "b"]
        assert abc.move_to_bottom("c") is True
        assert ids(abc) == ["a", "b", "c"]
        assert abc.move_to_top("a") is False
        assert abc.move_to_bottom("zzz") is False


class TestShuffle:
    def test_pointer_follows_identity(self, abc):
        abc.set_current(2)
        abc.shuffle(random.Random(3))
        assert abc.current().payload_id == "c"
        assert abc.items[abc.current_index].payload_id == "c"

    def test_permutation(self, queue):
        queue.insert_many([p(str(i)) for i in range(20)])
        queue.shuffle(random.Random(42))
        assert sorted(ids(queue)) == sorted(str(i) for i in range(20))
        assert [i.position_index for i in queue.items] == list(range(20))

    def test_deterministic_with_seed(self, queue):
        queue.insert_many([p(str(i)) for i in range(10)])
        other = PlaybackQueue()
        other.insert_many([p(str(i)) for i in range(10)])
        queue.shuffle(random.Random(7))
        other.shuffle(random.Random(7))
        assert ids(queue) == ids(other)

    def test_unset_pointer_stays_unset(self, abc):
        abc.shuffle(random.Random(1))
        assert abc.current_index is None

    def test_empty(self, queue):
        queue.shuffle()
        assert len(queue) == 0


class TestPointer:
    def test_advance_from_unset(self, abc):
        assert abc.has_next() is True
        assert abc.advance().payload_id == "a"
        assert abc.advance().payload_id == "b"
        assert abc.advance().payload_id == "c"

    def test_advance_at_end(self, abc):
        abc.set_current(2)
        assert abc.has_next() is False
        assert abc.advance() is None
        assert abc.current_index == 2

    def test_advance_empty(self, queue):
        assert queue.advance() is None
        assert queue.has_next() is False

    def test_retreat(self, abc):
        abc.set_current(2)
        assert abc.has_previous() is True
        assert abc.retreat().payload_id == "b"
        assert abc.retreat().payload_id == "a"
        assert abc.retreat() is None
        assert abc.has_previous() is False

    def test_retreat_unset(self, abc):
        assert abc.retreat() is None
        assert abc.current_index is None

    def test_set_current_clamps(self, abc):
        assert abc.set_current(10).payload_id == "c"
        assert abc.set_current(-4).payload_id == "a"

    def test_set_current_empty(self, queue):
        assert queue.set_current(0) is None
        assert queue.current_index is None


class TestClearAndReplace:
    def test_clear(self, abc):
        abc.set_current(1)
        abc.clear()
        assert len(abc) == 0
        assert abc.current_index is None

    def test_replace(self, abc):
        abc.set_current(2)
        assert abc.replace([p("x"), p("y"), p("x")]) == 2
        assert ids(abc) == ["x", "y"]
        assert abc.current_index == 0

    def test_replace_with_nothing(self, abc):
        assert abc.replace([]) == 0
        assert abc.current_index is None


class TestQueries:
    def test_contains_and_position(self, abc):
        assert abc.contains("b")
        assert not abc.contains("z")
        assert abc.position_of("c") == 2
        assert abc.position_of("z") is None

    def test_items_are_copies(self, abc):
        abc.items[0].position_index = 99
        assert abc.items[0].position_index == 0

    def test_to_dict(self, abc):
        abc.set_current(1)
        data = abc.to_dict()
        assert data["length"] == 3
        assert data["current_index"] == 1
        assert data["items"][1]["payload_id"] == "b"
        assert data["items"][1]["payload"]["title"] == "B"

    def test_queue_item_to_dict(self):
        item = QueueItem(payload=p("a"), inserted_at=5.0, position_index=3)
        assert item.to_dict() == {
            "payload_id": "a",
            "payload": p("a"),
            "inserted_at": 5.0,
            "position_index": 3,
        }


class TestInvariants:
    """Random operation sequences never break uniqueness, indexing, or pointer identity."""

    @pytest.mark.parametrize("seed", range(10))
    def test_random_operations(self, seed):
        rng = random.Random(seed)
        queue = PlaybackQueue()
        for _ in range(300):
            n = len(queue)
            before = queue.current()
            before_id = before.payload_id if before else None
            op = rng.choice(["insert", "insert", "remove", "move", "shuffle", "advance", "retreat", "set"])
            removed = None

            if op == "insert":
                index = rng.randint(-1, n + 1)
                queue.insert_at(p(f"i{rng.randint(0, 30)}"), index)
            elif op == "remove" and n:
                removed = rng.choice(ids(queue))
                queue.remove(removed)
            elif op == "move" and n:
                queue.move(rng.randint(0, n - 1), rng.randint(0, n + 2))
            elif op == "shuffle":
                queue.shuffle(rng)
            elif op == "advance":
                queue.advance()
            elif op == "retreat":
                queue.retreat()
            elif op == "set" and n:
                queue.set_current(rng.randint(0, n - 1))

            items = queue.items
            assert len({i.payload_id for i in items}) == len(items)
            assert [i.position_index for i in items] == list(range(len(items)))
            current = queue.current_index
            assert current is None or 0 <= current < len(items)
            if op in ("insert", "move", "shuffle") or (op == "remove" and removed != before_id):
                after = queue.current()
                assert (after.payload_id if after else None) == before_id
