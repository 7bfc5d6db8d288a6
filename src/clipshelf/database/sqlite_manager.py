import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from clipshelf.errors import StoreIOError
from clipshelf.models import ClipItem, ImageContent, TextContent

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS clips (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  kind TEXT NOT NULL,
  payload TEXT,
  width INTEGER,
  height INTEGER,
  created_at TEXT NOT NULL,
  category TEXT,
  summary TEXT,
  tags TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS clip_blobs (
  item_id TEXT PRIMARY KEY REFERENCES clips(id) ON DELETE CASCADE,
  data BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
  key TEXT PRIMARY KEY,
  value TEXT,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_clips_created ON clips(created_at DESC, seq DESC);
CREATE INDEX IF NOT EXISTS idx_clips_category ON clips(category);
"""

_SELECT_ITEMS = """
SELECT c.id, c.kind, c.payload, c.width, c.height, c.created_at,
       c.category, c.summary, c.tags, b.data
FROM clips c
LEFT JOIN clip_blobs b ON b.item_id = c.id
"""


def format_timestamp(value: datetime) -> str:
    # Fixed width so that string order matches time order.
    return value.isoformat(timespec="microseconds")


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text only matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteManager:
    """Raw persistence for clip items and settings.

    Writes go through one connection guarded by ``_write_lock``. File backed
    databases run in WAL mode and every reading thread gets its own
    connection, so reads see committed snapshots without waiting for writers.
    """

    def __init__(self, db_path: Union[str, Path] = MEMORY_PATH):
        self.db_path = str(db_path)
        self._in_memory = self.db_path == MEMORY_PATH
        self._write_lock = threading.RLock()
        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()
        self._closed = False

        if not self._in_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = self._connect()
            if not self._in_memory:
                self._conn.execute("PRAGMA journal_mode=WAL")
            with self._write_lock:
                self._conn.executescript(_SCHEMA)
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreIOError(f"Failed to open database {self.db_path}: {e}") from e

        logger.info("Database ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _reader(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreIOError("Database is closed")
        if self._in_memory:
            return self._conn

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._readers_lock:
                self._readers.append(conn)
        return conn

    def _read(self, sql: str, params: Tuple[Any, ...] = ()) -> List[Tuple[Any, ...]]:
        try:
            if self._in_memory:
                with self._write_lock:
                    return self._conn.execute(sql, params).fetchall()
            return self._reader().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreIOError(f"Read failed: {e}") from e

    # ------------------------------------------------------------------
    # Clip items
    # ------------------------------------------------------------------
    def insert_item(self, item: ClipItem) -> str:
        content = item.content
        payload: Optional[str] = None
        width: Optional[int] = None
        height: Optional[int] = None
        if isinstance(content, TextContent):
            payload = content.plain
        elif isinstance(content, ImageContent):
            width, height = content.width, content.height

        with self._write_lock:
            self._ensure_open()
            try:
                self._conn.execute(
                    """
                    INSERT INTO clips (id, kind, payload, width, height, created_at, category, summary, tags)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.id,
                        content.kind,
                        payload,
                        width,
                        height,
                        format_timestamp(item.created_at),
                        item.category,
                        item.summary,
                        json.dumps(item.tags, ensure_ascii=False),
                    ),
                )
                if isinstance(content, ImageContent):
                    self._conn.execute(
                        "INSERT INTO clip_blobs (item_id, data) VALUES (?, ?)",
                        (item.id, sqlite3.Binary(content.data)),
                    )
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise StoreIOError(f"Item {item.id} already exists") from e
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreIOError(f"Failed to insert item {item.id}: {e}") from e

        return item.id

    def update_enrichment(self, item_id: str, category: Optional[str],
                          tags: List[str], summary: Optional[str]) -> bool:
        with self._write_lock:
            self._ensure_open()
            try:
                cursor = self._conn.execute(
                    """
                    UPDATE clips
                    SET category = COALESCE(?, category), tags = ?, summary = ?
                    WHERE id = ?
                    """,
                    (category, json.dumps(tags, ensure_ascii=False), summary, item_id),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreIOError(f"Failed to update item {item_id}: {e}") from e
        return cursor.rowcount > 0

    def delete_item(self, item_id: str) -> bool:
        with self._write_lock:
            self._ensure_open()
            try:
                cursor = self._conn.execute("DELETE FROM clips WHERE id = ?", (item_id,))
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreIOError(f"Failed to delete item {item_id}: {e}") from e
        return cursor.rowcount > 0

    def get_item(self, item_id: str) -> Optional[ClipItem]:
        rows = self._read(_SELECT_ITEMS + " WHERE c.id = ?", (item_id,))
        if not rows:
            return None
        return self._row_to_item(rows[0])

    def list_items(self, category: Optional[str] = None,
                   query: Optional[str] = None) -> List[ClipItem]:
        clauses: List[str] = []
        params: List[Any] = []
        if category:
            clauses.append("c.category = ? COLLATE NOCASE")
            params.append(category)
        if query:
            pattern = f"%{escape_like(query)}%"
            clauses.append(
                "(c.payload LIKE ? ESCAPE '\\' OR c.category LIKE ? ESCAPE '\\'"
                " OR c.summary LIKE ? ESCAPE '\\' OR c.tags LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern] * 4)

        sql = _SELECT_ITEMS
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY c.created_at DESC, c.seq DESC"

        items = []
        for row in self._read(sql, tuple(params)):
            item = self._row_to_item(row)
            if item is not None:
                items.append(item)
        return items

    def get_categories(self) -> List[str]:
        rows = self._read(
            "SELECT DISTINCT category FROM clips WHERE category IS NOT NULL ORDER BY category"
        )
        return [row[0] for row in rows]

    def latest_created_at(self) -> Optional[datetime]:
        rows = self._read("SELECT MAX(created_at) FROM clips")
        if not rows or rows[0][0] is None:
            return None
        return datetime.fromisoformat(rows[0][0])

    def _row_to_item(self, row: Tuple[Any, ...]) -> Optional[ClipItem]:
        item_id, kind, payload, width, height, created_at, category, summary, tags_json, blob = row

        if kind == "text":
            content: Any = TextContent(plain=payload or "")
        elif kind == "image":
            content = ImageContent(data=bytes(blob or b""), width=width or 0, height=height or 0)
        else:
            logger.warning("Skipping item %s with unknown kind %r", item_id, kind)
            return None

        try:
            tags = json.loads(tags_json) if tags_json else []
        except ValueError:
            logger.warning("Item %s has malformed tags, ignoring them", item_id)
            tags = []

        return ClipItem(
            id=item_id,
            content=content,
            created_at=datetime.fromisoformat(created_at),
            category=category,
            summary=summary,
            tags=tags,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_setting(self, key: str) -> Optional[str]:
        rows = self._read("SELECT value FROM settings WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def has_setting(self, key: str) -> bool:
        return bool(self._read("SELECT 1 FROM settings WHERE key = ?", (key,)))

    def set_setting(self, key: str, value: Optional[str]) -> None:
        with self._write_lock:
            self._ensure_open()
            try:
                self._conn.execute(
                    """
                    INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, value, datetime.now().isoformat()),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreIOError(f"Failed to save setting {key!r}: {e}") from e

    def get_all_settings(self) -> Dict[str, Optional[str]]:
        rows = self._read("SELECT key, value FROM settings ORDER BY key")
        return {key: value for key, value in rows}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreIOError("Database is closed")

    def health_check(self) -> Dict[str, Any]:
        rows = self._read("SELECT kind, COUNT(*) FROM clips GROUP BY kind")
        counts = {kind: count for kind, count in rows}
        return {
            "status": "healthy",
            "path": self.db_path,
            "items": sum(counts.values()),
            "by_kind": counts,
        }

    def close(self) -> None:
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            with self._readers_lock:
                for conn in self._readers:
                    try:
                        conn.close()
                    except sqlite3.Error:
                        logger.debug("Reader connection already closed")
                self._readers.clear()
            self._conn.close()
