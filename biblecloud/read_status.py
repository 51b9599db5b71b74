"""Synchronization of the per-user read status with the document store.

Remote writes and cache updates are kept apart: every adapter operation
returns a :class:`RemoteResult` describing what the store now holds, and the
``apply_*`` helpers turn that result into a new :data:`ReadStatus` map
without touching the previous one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from .catalog import Chapter
from .errors import NotAuthenticatedError
from .models import AuthUser, ReadRecord, ReadStatus, ReadStatusEntry
from .stores import READ_CHAPTERS_COLLECTION, DocumentStore, StoredDocument
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

Clock = Callable[[], str]


@dataclass(frozen=True)
class RemoteResult:
    chapter_id: str
    record: Optional[ReadRecord] = None

    @property
    def deleted(self) -> bool:
        return self.record is None


def _require_user(user: Optional[AuthUser]) -> AuthUser:
    if user is None or not user.uid:
        raise NotAuthenticatedError()
    return user


def entry_from_record(record: ReadRecord, doc_id: Optional[str] = None) -> ReadStatusEntry:
    return ReadStatusEntry(
        latest_read_timestamp=record.latest_read_timestamp,
        document_id=doc_id or record.id,
        notes=record.notes or "",
    )


def build_read_status(documents: Iterable[StoredDocument]) -> ReadStatus:
    status: ReadStatus = {}
    for document in documents:
        chapter_id = document.data.get("id")
        if not chapter_id:
            logger.debug("Skipping read record without id: %s", document.doc_id)
            continue
        record = ReadRecord.from_document(document.data, doc_id=document.doc_id)
        status[str(chapter_id)] = entry_from_record(record, document.doc_id)
    return status


def apply_mark_read(status: ReadStatus, record: ReadRecord) -> ReadStatus:
    updated = dict(status)
    previous = status.get(record.id)
    if previous is None:
        updated[record.id] = entry_from_record(record)
    else:
        updated[record.id] = replace(previous, latest_read_timestamp=record.latest_read_timestamp)
    return updated


def apply_notes(status: ReadStatus, record: ReadRecord) -> ReadStatus:
    updated = dict(status)
    previous = status.get(record.id)
    if previous is None:
        updated[record.id] = entry_from_record(record)
    else:
        updated[record.id] = replace(previous, notes=record.notes or "")
    return updated


def apply_unread(status: ReadStatus, chapter_id: str) -> ReadStatus:
    updated = dict(status)
    updated.pop(chapter_id, None)
    return updated


def apply_remote_result(status: ReadStatus, result: RemoteResult) -> ReadStatus:
    if result.record is None:
        return apply_unread(status, result.chapter_id)
    previous = status.get(result.chapter_id)
    updated = dict(status)
    updated[result.chapter_id] = entry_from_record(
        result.record, previous.document_id if previous else None
    )
    return updated


class ReadStatusAdapter:
    """Reads and writes ReadRecords under ``users/{uid}/readChapters``."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Optional[Clock] = None,
        collection: str = READ_CHAPTERS_COLLECTION,
    ) -> None:
        self._store = store
        self._clock = clock or utc_now_iso
        self._collection = collection

    def _now(self) -> str:
        return self._clock()

    def load_all(self, user: Optional[AuthUser]) -> ReadStatus:
        account = _require_user(user)
        documents = self._store.list_documents(account, self._collection)
        status = build_read_status(documents)
        logger.debug("Loaded %d read chapters for %s", len(status), account.uid)
        return status

    def fetch_record(self, user: Optional[AuthUser], chapter_id: str) -> Optional[ReadRecord]:
        account = _require_user(user)
        payload = self._store.get_document(account, self._collection, chapter_id)
        if payload is None:
            return None
        return ReadRecord.from_document(payload, doc_id=chapter_id)

    def mark_read(self, user: Optional[AuthUser], chapter: Chapter) -> RemoteResult:
        account = _require_user(user)
        now = self._now()
        existing = self.fetch_record(account, chapter.id)
        if existing is None:
            record = ReadRecord.first_reading(chapter, now)
            self._store.set_document(account, self._collection, chapter.id, record.to_document())
        else:
            record = existing.with_reading(now)
            self._store.update_document(
                account,
                self._collection,
                chapter.id,
                {
                    "latestReadTimestamp": record.latest_read_timestamp,
                    "allTimestamps": list(record.all_timestamps),
                },
            )
        return RemoteResult(chapter.id, record)

    def save_notes(self, user: Optional[AuthUser], chapter: Chapter, text: str) -> RemoteResult:
        account = _require_user(user)
        notes = text or ""
        existing = self.fetch_record(account, chapter.id)
        if existing is None:
            record = ReadRecord.first_reading(chapter, self._now(), notes=notes)
            self._store.set_document(account, self._collection, chapter.id, record.to_document())
        else:
            record = replace(existing, notes=notes)
            self._store.update_document(account, self._collection, chapter.id, {"notes": notes})
        return RemoteResult(chapter.id, record)

    def mark_unread(self, user: Optional[AuthUser], chapter: Chapter) -> RemoteResult:
        account = _require_user(user)
        self._store.delete_document(account, self._collection, chapter.id)
        return RemoteResult(chapter.id, None)
