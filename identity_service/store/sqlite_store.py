"""
SQLite-backed document store for local development.

Documents are kept as JSON in a single table keyed by (collection, doc_id).
Datetimes are tagged on the way in so they come back as timezone-aware
datetime objects, matching what the Firestore client returns.
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, Iterator, List, Tuple

from .index import IDocumentStore, Query, apply_query
from .types import DocumentSnapshot

_DATETIME_TAG = "__datetime__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value.keys()) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def dumps(data: Dict[str, Any]) -> str:
    return json.dumps(_encode(data))


def loads(payload: str) -> Dict[str, Any]:
    return _decode(json.loads(payload))


class _SQLiteQuery(Query):

    def __init__(self, store: 'SQLiteDocumentStore', collection: str, **kwargs):
        super().__init__(collection, **kwargs)
        self._store = store

    def stream(self) -> Iterator[DocumentSnapshot]:
        # Filtering happens in Python; collections here are small enough for local use
        return iter(apply_query(self._store._rows(self.collection), self))


class SQLiteDocumentStore(IDocumentStore):
    """IDocumentStore over a local SQLite file."""

    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout
        # Serializes read-modify-write for merge updates within this process
        self._write_lock = threading.Lock()
        self.init_db()

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Initialize the documents table."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (collection, doc_id)
                )
            ''')
            conn.commit()

    def _rows(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT doc_id, data FROM documents WHERE collection = ?",
                (collection,)
            )
            return [(row[0], loads(row[1])) for row in cursor.fetchall()]

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            )
            row = cursor.fetchone()
        return DocumentSnapshot(id=doc_id, data=loads(row[0]) if row else None)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._write_lock:
            if merge:
                existing = self.get(collection, doc_id)
                if existing.exists:
                    merged = existing.data
                    merged.update(data)
                    data = merged

            with self.get_db() as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT OR REPLACE INTO documents (collection, doc_id, data, updated_at)
                    VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ''', (collection, doc_id, dumps(data)))
                conn.commit()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def query(self, collection: str) -> Query:
        return _SQLiteQuery(self, collection)

    def health_check(self) -> bool:
        """Check database health."""
        try:
            with self.get_db() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
                table_names = [table[0] for table in cursor.fetchall()]
                return 'documents' in table_names
        except sqlite3.Error:
            return False
