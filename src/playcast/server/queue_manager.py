"""Playback queue for PlayCast.

An ordered list of playable payloads with a movable "current" pointer.
The pointer is an index, but it follows the identity of the item it points
at through inserts, removals, moves and shuffles.

Queue operations never raise for user-driven input: duplicates and
out-of-range indices resolve to a no-op or a clamp.
"""

import logging
import random
import sqlite3
import threading
import time
from dataclasses import dataclass, field, replace

logger = logging.getLogger(__name__)


def payload_identity(payload) -> str | None:
    """A payload is identified by its "id", falling back to its "url"."""
    if not isinstance(payload, dict):
        return None
    for key in ("id", "url"):
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


@dataclass
class QueueItem:
    """A single item in the playback queue."""

    payload: dict
    inserted_at: float = field(default_factory=time.time)
    position_index: int = 0

    @property
    def payload_id(self) -> str:
        return payload_identity(self.payload) or ""

    def to_dict(self) -> dict:
        return {
            "payload_id": self.payload_id,
            "payload": self.payload,
            "inserted_at": self.inserted_at,
            "position_index": self.position_index,
        }


class PlaybackQueue:
    """Ordered queue with an identity-tracking current pointer.

    `current_index` is None (nothing selected) or a valid index. Every
    mutation recomputes all position indexes and, if a store is attached,
    saves the new order. One lock serializes all access.
    """

    def __init__(self, store=None):
        self._items: list[QueueItem] = []
        self._current: int | None = None
        self._lock = threading.Lock()
        self._store = store
        if store is not None:
            self.load()

    # --- persistence ---

    def load(self) -> int:
        """Restore items from the store. The pointer starts unset."""
        if self._store is None:
            return 0
        try:
            loaded = self._store.load()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Failed to load queue: %s", e)
            return 0
        with self._lock:
            self._items = []
            seen = set()
            for item in loaded:
                if item.payload_id and item.payload_id not in seen:
                    seen.add(item.payload_id)
                    self._items.append(item)
            self._current = None
            self._reindex()
            count = len(self._items)
        logger.info("Loaded %d queue items", count)
        return count

    def _save(self):
        if self._store is None:
            return
        try:
            self._store.save([replace(item) for item in self._items])
        except (sqlite3.Error, OSError) as e:
            logger.warning("Failed to persist queue (%d items): %s", len(self._items), e)

    # --- internal helpers, called with the lock held ---

    def _reindex(self):
        for i, item in enumerate(self._items):
            item.position_index = i

    def _index_of(self, payload_id: str) -> int | None:
        for i, item in enumerate(self._items):
            if item.payload_id == payload_id:
                return i
        return None

    def _commit(self):
        self._reindex()
        self._save()

    def _move(self, from_index: int, to_index: int) -> bool:
        n = len(self._items)
        if not 0 <= from_index < n:
            return False
        to_index = max(0, min(to_index, n - 1))
        if from_index == to_index:
            return False

        item = self._items.pop(from_index)
        self._items.insert(to_index, item)

        current = self._current
        if current is not None:
            if current == from_index:
                self._current = to_index
            elif from_index < current <= to_index:
                self._current = current - 1
            elif to_index <= current < from_index:
                self._current = current + 1
        self._commit()
        logger.info("Moved %s from %d to %d", item.payload_id, from_index, to_index)
        return True

    # --- mutations ---

    def insert_at(self, payload: dict, index: int | None = None) -> bool:
        """Insert a payload; append when index is None or out of range.

        Returns False (and changes nothing) for duplicates and payloads
        without an identity.
        """
        payload_id = payload_identity(payload)
        if payload_id is None:
            logger.debug("Ignoring queue payload without id or url")
            return False
        with self._lock:
            if self._index_of(payload_id) is not None:
                logger.debug("Ignoring duplicate queue item %s", payload_id)
                return False

            item = QueueItem(payload=dict(payload))
            if index is None or not 0 <= index <= len(self._items):
                index = len(self._items)
            self._items.insert(index, item)
            if self._current is not None and index <= self._current:
                self._current += 1
            self._commit()
        logger.info("Added to queue at %d: %s", index, payload_id)
        return True

    def insert_many(self, payloads: list[dict]) -> int:
        """Append payloads, skipping duplicates. Returns the number added."""
        added = 0
        with self._lock:
            for payload in payloads:
                payload_id = payload_identity(payload)
                if payload_id is None or self._index_of(payload_id) is not None:
                    continue
                self._items.append(QueueItem(payload=dict(payload)))
                added += 1
            if added:
                self._commit()
        if added:
            logger.info("Added %d items to queue", added)
        return added

    def remove(self, payload_id: str) -> bool:
        with self._lock:
            index = self._index_of(payload_id)
            if index is None:
                return False
            self._items.pop(index)

            current = self._current
            if current is not None:
                if index < current:
                    self._current = current - 1
                elif index == current:
                    # Stays on the same index, which now holds the next item
                    if not self._items:
                        self._current = None
                    elif current >= len(self._items):
                        self._current = len(self._items) - 1
            self._commit()
        logger.info("Removed from queue: %s", payload_id)
        return True

    def move(self, from_index: int, to_index: int) -> bool:
        """Relocate one item. to_index is clamped; a bad from_index is a no-op."""
        with self._lock:
            return self._move(from_index, to_index)

    def move_to_top(self, payload_id: str) -> bool:
        with self._lock:
            index = self._index_of(payload_id)
            return index is not None and self._move(index, 0)

    def move_to_bottom(self, payload_id: str) -> bool:
        with self._lock:
            index = self._index_of(payload_id)
            return index is not None and self._move(index, len(self._items) - 1)

    def shuffle(self, rng: random.Random | None = None):
        """Fisher-Yates shuffle; the pointer is relocated by identity."""
        rng = rng or random.Random()
        with self._lock:
            current_id = self._current_id()
            items = self._items
            for i in range(len(items) - 1, 0, -1):
                j = rng.randint(0, i)
                items[i], items[j] = items[j], items[i]
            if current_id is not None:
                self._current = self._index_of(current_id)
            self._commit()
        logger.info("Shuffled queue (%d items)", len(self._items))

    def clear(self):
        with self._lock:
            self._items = []
            self._current = None
            self._commit()
        logger.info("Cleared queue")

    def replace(self, payloads: list[dict]) -> int:
        """Swap in a new list; the pointer goes to the first item."""
        with self._lock:
            self._items = []
            seen = set()
            for payload in payloads:
                payload_id = payload_identity(payload)
                if payload_id is None or payload_id in seen:
                    continue
                seen.add(payload_id)
                self._items.append(QueueItem(payload=dict(payload)))
            self._current = 0 if self._items else None
            self._commit()
            count = len(self._items)
        logger.info("Replaced queue with %d items", count)
        return count

    # --- pointer ---

    def _current_id(self) -> str | None:
        if self._current is None:
            return None
        return self._items[self._current].payload_id

    def advance(self) -> QueueItem | None:
        """Step forward. From an unset pointer, start at the first item.

        Returns None at the end; the queue does not wrap.
        """
        with self._lock:
            if not self._items:
                return None
            if self._current is None:
                self._current = 0
            elif self._current + 1 < len(self._items):
                self._current += 1
            else:
                return None
            return self._items[self._current]

    def retreat(self) -> QueueItem | None:
        with self._lock:
            if self._current is None or self._current == 0:
                return None
            self._current -= 1
            return self._items[self._current]

    def set_current(self, index: int) -> QueueItem | None:
        with self._lock:
            if not self._items:
                return None
            self._current = max(0, min(index, len(self._items) - 1))
            return self._items[self._current]

    def current(self) -> QueueItem | None:
        with self._lock:
            if self._current is None:
                return None
            return self._items[self._current]

    def has_next(self) -> bool:
        with self._lock:
            if self._current is None:
                return bool(self._items)
            return self._current + 1 < len(self._items)

    def has_previous(self) -> bool:
        with self._lock:
            return self._current is not None and self._current > 0

    # --- queries ---

    def contains(self, payload_id: str) -> bool:
        with self._lock:
            return self._index_of(payload_id) is not None

    def position_of(self, payload_id: str) -> int | None:
        with self._lock:
            return self._index_of(payload_id)

    @property
    def items(self) -> list[QueueItem]:
        with self._lock:
            return [replace(item) for item in self._items]

    @property
    def current_index(self) -> int | None:
        with self._lock:
            return self._current

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "items": [item.to_dict() for item in self._items],
                "current_index": self._current,
                "length": len(self._items),
            }
