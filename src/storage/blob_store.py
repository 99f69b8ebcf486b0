"""
Key/blob persistence: one JSON document per named collection in SQLite.
"""
import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


class BlobStore:
    """
    Named blobs stored in a single SQLite table.

    Collections are JSON arrays of records. A malformed collection loads as
    empty with a logged warning; write failures propagate to the caller.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to knowledge_hub.sqlite
        """
        self.db_path = Path(db_path)

    def initialize(self) -> None:
        """Create the data directory and blobs table if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS blobs (
                    name TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def exists(self, name: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT 1 FROM blobs WHERE name = ?", (name,)).fetchone()
        return row is not None

    def load_blob(self, name: str) -> Optional[str]:
        """Return raw blob content, or None if missing."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT content FROM blobs WHERE name = ?", (name,)).fetchone()
        return row[0] if row else None

    def save_blob(self, name: str, content: str) -> None:
        """Create or replace a blob."""
        now = datetime.now(UTC).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO blobs (name, content, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET content = excluded.content,
                                                updated_at = excluded.updated_at
                """,
                (name, content, now),
            )
            conn.commit()

    def delete_blob(self, name: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM blobs WHERE name = ?", (name,))
            conn.commit()
            return cursor.rowcount > 0

    def blob_size(self, name: str) -> int:
        """Size of a blob in bytes (UTF-8), 0 if missing."""
        content = self.load_blob(name)
        return len(content.encode("utf-8")) if content else 0

    def load_collection(self, name: str) -> list[dict]:
        """Load a named collection of records; missing or malformed loads as []."""
        content = self.load_blob(name)
        if content is None or not content.strip():
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            log.warning("Collection %s is not valid JSON, loading as empty: %s", name, e)
            return []

        if not isinstance(data, list):
            log.warning("Collection %s is not a JSON array, loading as empty", name)
            return []
        return [r for r in data if isinstance(r, dict)]

    def save_collection(self, name: str, records: list[dict]) -> None:
        self.save_blob(name, json.dumps(records, ensure_ascii=False))
