from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .catalog import Chapter


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str = ""
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    # Epoch seconds after which ``id_token`` is rejected; None for tokens that do not expire
    expires_at: Optional[float] = None

    def expires_within(self, seconds: float, now: float) -> bool:
        return self.expires_at is not None and self.expires_at - seconds <= now


@dataclass
class ReadRecord:
    """Reading history and notes of one chapter for one user."""

    id: str
    section: str
    chapter: str
    latest_read_timestamp: str
    all_timestamps: List[str] = field(default_factory=list)
    notes: str = ""

    @classmethod
    def first_reading(cls, chapter: Chapter, timestamp: str, notes: str = "") -> "ReadRecord":
        return cls(
            id=chapter.id,
            section=chapter.section,
            chapter=chapter.chapter,
            latest_read_timestamp=timestamp,
            all_timestamps=[timestamp],
            notes=notes,
        )

    def with_reading(self, timestamp: str) -> "ReadRecord":
        return ReadRecord(
            id=self.id,
            section=self.section,
            chapter=self.chapter,
            latest_read_timestamp=timestamp,
            all_timestamps=[timestamp, *self.all_timestamps],
            notes=self.notes,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "section": self.section,
            "chapter": self.chapter,
            "latestReadTimestamp": self.latest_read_timestamp,
            "allTimestamps": list(self.all_timestamps),
            "notes": self.notes,
        }

    @classmethod
    def from_document(cls, payload: Mapping[str, Any], *, doc_id: Optional[str] = None) -> "ReadRecord":
        raw_timestamps = payload.get("allTimestamps") or []
        timestamps = [str(value) for value in raw_timestamps if value]
        latest = str(payload.get("latestReadTimestamp") or (timestamps[0] if timestamps else ""))
        return cls(
            id=str(payload.get("id") or doc_id or ""),
            section=str(payload.get("section") or ""),
            chapter=str(payload.get("chapter") or ""),
            latest_read_timestamp=latest,
            all_timestamps=timestamps,
            notes=str(payload.get("notes") or ""),
        )


@dataclass(frozen=True)
class ReadStatusEntry:
    latest_read_timestamp: str
    document_id: str
    notes: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "latestReadTimestamp": self.latest_read_timestamp,
            "documentId": self.document_id,
            "notes": self.notes,
        }


ReadStatus = Dict[str, ReadStatusEntry]
