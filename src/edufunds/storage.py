from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

PREFERENCES_KEY = "notification_preferences"
REMINDERS_KEY = "scheduled_reminders"
PRESETS_KEY = "filter_presets"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class DocumentStore(Protocol):
    """Durable key-value store holding one serialized document per key."""

    def get_document(self, key: str) -> str | None: ...

    def put_document(self, key: str, value: str) -> None: ...

    def delete_document(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})

    def get_document(self, key: str) -> str | None:
        return self.documents.get(key)

    def put_document(self, key: str, value: str) -> None:
        self.documents[key] = value

    def delete_document(self, key: str) -> None:
        self.documents.pop(key, None)


class SQLiteStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.connection = sqlite3.connect(self.db_path)
        self.connection.row_factory = sqlite3.Row

    def close(self) -> None:
        self.connection.close()

    def initialize(self) -> None:
        with self.connection:
            self.connection.executescript(SCHEMA_SQL)

    def get_document(self, key: str) -> str | None:
        row = self.connection.execute(
            "SELECT value FROM documents WHERE key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def put_document(self, key: str, value: str) -> None:
        updated_at = datetime.now(timezone.utc).isoformat()
        with self.connection:
            self.connection.execute(
                """
                INSERT INTO documents (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, updated_at),
            )

    def delete_document(self, key: str) -> None:
        with self.connection:
            self.connection.execute("DELETE FROM documents WHERE key = ?", (key,))
