"""SQLite-backed persistence for the playback queue."""

import json
import logging

from playcast.server.database import Database
from playcast.server.queue_manager import QueueItem

logger = logging.getLogger(__name__)


class QueueStore:
    """Saves and loads the ordered queue list. The pointer is not persisted."""

    def __init__(self, db: Database):
        self._db = db

    def save(self, items: list[QueueItem]):
        """Replace the stored list with `items` in one transaction."""
        rows = [
            (i, item.payload_id, json.dumps(item.payload), item.inserted_at)
            for i, item in enumerate(items)
        ]
        try:
            self._db.execute("DELETE FROM queue_items")
            if rows:
                self._db.executemany(
                    "INSERT INTO queue_items (position, payload_id, payload, inserted_at) "
                    "VALUES (?, ?, ?, ?)",
                    rows,
                )
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        logger.debug("Saved %d queue items", len(rows))

    def load(self) -> list[QueueItem]:
        rows = self._db.fetchall(
            "SELECT position, payload, inserted_at FROM queue_items ORDER BY position"
        )
        items = []
        for row in rows:
            try:
                payload = json.loads(row["payload"])
            except ValueError:
                logger.warning("Skipping unreadable queue row at position %d", row["position"])
                continue
            items.append(QueueItem(payload=payload, inserted_at=row["inserted_at"]))
        return items
