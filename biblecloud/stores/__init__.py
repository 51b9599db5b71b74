from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from biblecloud.models import AuthUser

READ_CHAPTERS_COLLECTION = "readChapters"


@dataclass(frozen=True)
class StoredDocument:
    doc_id: str
    data: Dict[str, Any]


class DocumentStore:
    """Per-user document collections.

    Every call is scoped to ``users/{user.uid}/{collection}``. Implementations
    raise :class:`biblecloud.errors.StoreError` on failure.
    """

    def list_documents(self, user: AuthUser, collection: str) -> List[StoredDocument]:
        raise NotImplementedError

    def get_document(self, user: AuthUser, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set_document(self, user: AuthUser, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def update_document(self, user: AuthUser, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Merge ``fields`` into an existing document; raise StoreError when it is missing."""
        raise NotImplementedError

    def delete_document(self, user: AuthUser, collection: str, doc_id: str) -> None:
        raise NotImplementedError


def build_store(settings: Mapping[str, Any]) -> DocumentStore:
    backend = str(settings.get("backend") or "local").lower()
    if backend == "firebase":
        from .firestore import FirestoreConfig, FirestoreStore

        return FirestoreStore(
            FirestoreConfig(
                project_id=str(settings.get("firebase_project_id") or ""),
                timeout=float(settings.get("http_timeout") or 15.0),
            )
        )
    if backend == "local":
        from .sqlite_store import SQLiteDocumentStore

        return SQLiteDocumentStore(settings.get("database_path") or None)
    raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    "READ_CHAPTERS_COLLECTION",
    "DocumentStore",
    "StoredDocument",
    "build_store",
]
