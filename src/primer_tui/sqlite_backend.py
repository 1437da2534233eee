from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from primer_tui.errors import StorageFailure

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class SQLiteBackend:
    """Owns a shared SQLite connection and applies the story schema migrations."""

    def __init__(self, db_path: str) -> None:
        self._lock = threading.Lock()
        try:
            if db_path != ":memory:":
                Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                db_path = str(Path(db_path).expanduser())
            self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        except (OSError, sqlite3.Error) as exc:
            raise StorageFailure(f"connect database: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._db_path = db_path
        logger.info("database connection established path=%s", db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    def close(self) -> None:
        self._conn.close()
        logger.info("database connection closed")

    def migrate(self) -> None:
        try:
            self._configure()
            self._apply_migrations()
        except sqlite3.Error as exc:
            raise StorageFailure(f"execute migration: {exc}") from exc
        logger.info("database migrations completed version=%d", SCHEMA_VERSION)

    def _configure(self) -> None:
        cursor = self._conn.cursor()
        if self._db_path != ":memory:":
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    def _apply_migrations(self) -> None:
        with self._lock:
            user_version = self._conn.execute("PRAGMA user_version").fetchone()[0]
            if user_version == 0:
                self._create_v1_schema()
                self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            elif user_version != SCHEMA_VERSION:
                raise StorageFailure(f"Unsupported schema version: {user_version}")

    def _create_v1_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT,
                email TEXT UNIQUE,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stories (
                id TEXT PRIMARY KEY NOT NULL,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                summary TEXT NOT NULL DEFAULT '',
                current_page INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pages (
                id TEXT PRIMARY KEY NOT NULL,
                story_id TEXT NOT NULL,
                page_num INTEGER NOT NULL,
                prompt TEXT NOT NULL,
                completion TEXT NOT NULL,
                summary TEXT NOT NULL DEFAULT '',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (story_id) REFERENCES stories(id) ON DELETE CASCADE,
                UNIQUE (story_id, page_num)
            )
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_stories_user_created ON stories(user_id, created_at)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_pages_story_page ON pages(story_id, page_num)")
