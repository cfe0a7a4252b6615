"""SQLite storage for PlayCast.

Holds the persisted playback queue. Schema is created on startup and
migrated forward by version number.
"""

import logging
import os
import sqlite3
import threading
import time

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS queue_items (
    position INTEGER PRIMARY KEY,
    payload_id TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL,
    inserted_at REAL NOT NULL
);
"""


class Database:
    """Thread-safe SQLite database manager.

    Each thread gets its own connection; Flask's threaded dev server and
    the CLI can share one Database instance.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._local = threading.local()
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA busy_timeout=5000")
        return self._local.conn

    def _init_schema(self):
        conn = self._get_conn()
        conn.executescript(SCHEMA_SQL)

        row = conn.execute("SELECT version FROM schema_version").fetchone()
        if row is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        elif row["version"] < SCHEMA_VERSION:
            self._migrate(row["version"], SCHEMA_VERSION)
        conn.commit()

        logger.info("Database initialized at %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    def _migrate(self, from_version: int, to_version: int):
        """Run schema migrations. v1 is the first schema, so this only bumps the version."""
        conn = self._get_conn()
        conn.execute("UPDATE schema_version SET version = ?", (to_version,))
        conn.commit()
        logger.info("Migrated database from v%d to v%d", from_version, to_version)

    # Exponential backoff for a busy or flaky disk: 0.1 + 0.2 + 0.4 + 0.8 = 1.5s total
    _RETRY_DELAYS = [0.1, 0.2, 0.4, 0.8]

    def _retry_on_io_error(self, operation, description: str = "DB operation"):
        """Run a DB operation, retrying on 'database is locked' and disk I/O errors."""
        try:
            return operation(self._get_conn())
        except sqlite3.OperationalError as e:
            err = str(e)
            if "disk I/O error" not in err and "database is locked" not in err:
                raise
            last_exc = e
            for attempt, delay in enumerate(self._RETRY_DELAYS, start=1):
                logger.warning(
                    "SQLite %s error (attempt %d/%d): %s, retrying in %.1fs",
                    description, attempt, len(self._RETRY_DELAYS), last_exc, delay,
                )
                if "disk I/O error" in str(last_exc):
                    # Reopen after disk errors only; closing on a lock would drop the open transaction.
                    self.close()
                time.sleep(delay)
                try:
                    return operation(self._get_conn())
                except sqlite3.OperationalError as retry_e:
                    last_exc = retry_e
            raise last_exc

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._retry_on_io_error(lambda conn: conn.execute(sql, params), "execute")

    def executemany(self, sql: str, params_list: list[tuple]) -> sqlite3.Cursor:
        return self._retry_on_io_error(lambda conn: conn.executemany(sql, params_list), "executemany")

    def commit(self):
        self._retry_on_io_error(lambda conn: conn.commit(), "commit")

    def rollback(self):
        self._get_conn().rollback()

    def fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        row = self.execute(sql, params).fetchone()
        return dict(row) if row else None

    def fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        return [dict(row) for row in self.execute(sql, params).fetchall()]

    def close(self):
        """Close the thread-local connection."""
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None
