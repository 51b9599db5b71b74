from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from biblecloud.errors import StoreError
from biblecloud.models import AuthUser
from biblecloud.utils import get_user_settings_dir

from . import DocumentStore, StoredDocument

_DB_LOCK = threading.RLock()
_SCHEMA_VERSION = 1


def default_store_path() -> Path:
    target = Path(get_user_settings_dir()) / "biblecloud.db"
    target.parent.mkdir(parents=True, exist_ok=True)
    return target


class SQLiteDocumentStore(DocumentStore):
    """Document store kept in a local SQLite database, one JSON blob per document."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self._path = Path(path) if path else default_store_path()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with _DB_LOCK:
            conn = self._connect()
            try:
                self._ensure_schema(conn)
            finally:
                conn.close()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(self._path)
            connection.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open document store: {exc}") from exc
        connection.row_factory = sqlite3.Row
        return connection

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                user_id TEXT NOT NULL,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (user_id, collection, doc_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            )
            """
        )
        row = conn.execute("SELECT value FROM metadata WHERE key='schema_version'").fetchone()
        if row is None:
            conn.execute(
                "INSERT OR REPLACE INTO metadata(key, value) VALUES('schema_version', ?)",
                (_SCHEMA_VERSION,),
            )
        conn.commit()

    @staticmethod
    def _decode(raw: str) -> Dict[str, Any]:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise StoreError(f"Corrupt document: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreError("Corrupt document: expected an object")
        return payload

    def list_documents(self, user: AuthUser, collection: str) -> List[StoredDocument]:
        with _DB_LOCK:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "SELECT doc_id, data FROM documents WHERE user_id=? AND collection=? ORDER BY doc_id",
                    (user.uid, collection),
                )
                return [StoredDocument(row["doc_id"], self._decode(row["data"])) for row in cursor.fetchall()]
            except sqlite3.Error as exc:
                raise StoreError(f"Unable to list documents: {exc}") from exc
            finally:
                conn.close()

    def get_document(self, user: AuthUser, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _DB_LOCK:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT data FROM documents WHERE user_id=? AND collection=? AND doc_id=?",
                    (user.uid, collection, doc_id),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Unable to read document {doc_id}: {exc}") from exc
            finally:
                conn.close()
        if row is None:
            return None
        return self._decode(row["data"])

    def set_document(self, user: AuthUser, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        payload = json.dumps(dict(data), ensure_ascii=False)
        with _DB_LOCK:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO documents (user_id, collection, doc_id, data, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, collection, doc_id) DO UPDATE SET
                        data=excluded.data,
                        updated_at=excluded.updated_at
                    """,
                    (user.uid, collection, doc_id, payload, time.time()),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Unable to write document {doc_id}: {exc}") from exc
            finally:
                conn.close()

    def update_document(self, user: AuthUser, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        with _DB_LOCK:
            current = self.get_document(user, collection, doc_id)
            if current is None:
                raise StoreError(f"No document to update: {doc_id}")
            current.update(fields)
            self.set_document(user, collection, doc_id, current)

    def delete_document(self, user: AuthUser, collection: str, doc_id: str) -> None:
        with _DB_LOCK:
            conn = self._connect()
            try:
                conn.execute(
                    "DELETE FROM documents WHERE user_id=? AND collection=? AND doc_id=?",
                    (user.uid, collection, doc_id),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Unable to delete document {doc_id}: {exc}") from exc
            finally:
                conn.close()
