from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from .errors import CatalogError
from .text_normalization import normalize_text
from .utils import get_resource_path

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_RESOURCE = "bible_chapters.json"


@dataclass(frozen=True)
class Chapter:
    id: str
    section: str
    chapter: str

    @property
    def label(self) -> str:
        return f"{self.section} {self.chapter}"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "section": self.section, "chapter": self.chapter}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Chapter":
        chapter_id = payload.get("id")
        if chapter_id is None or str(chapter_id).strip() == "":
            raise CatalogError(f"Catalog entry without id: {dict(payload)!r}")
        return cls(
            id=str(chapter_id),
            section=str(payload.get("section") or ""),
            chapter=str(payload.get("chapter") or ""),
        )


def parse_catalog(payload: Any) -> List[Chapter]:
    if not isinstance(payload, list):
        raise CatalogError("Chapter catalog must be a JSON array")
    chapters: List[Chapter] = []
    seen: set[str] = set()
    for entry in payload:
        if not isinstance(entry, Mapping):
            raise CatalogError(f"Invalid catalog entry: {entry!r}")
        chapter = Chapter.from_mapping(entry)
        if chapter.id in seen:
            logger.warning("Duplicate chapter id in catalog: %s", chapter.id)
            continue
        seen.add(chapter.id)
        chapters.append(chapter)
    return chapters


def _fetch_remote_catalog(url: str, *, timeout: float, transport: Optional[httpx.BaseTransport] = None) -> Any:
    try:
        with httpx.Client(timeout=timeout, headers={"Accept": "application/json"}, transport=transport) as client:
            response = client.get(url, follow_redirects=True)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise CatalogError(f"Catalog request failed: {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise CatalogError(f"Catalog request failed: {exc}") from exc
    try:
        return response.json()
    except ValueError as exc:
        raise CatalogError(f"Catalog response is not valid JSON: {exc}") from exc


def load_catalog(
    source: Optional[str] = None,
    *,
    timeout: float = 15.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> List[Chapter]:
    """Load the chapter catalog.

    ``source`` may be an HTTP(S) URL, a path to a JSON file, or ``None`` for the
    catalog bundled with the package. Order is preserved.
    """
    text_source = (source or "").strip()
    if text_source.startswith("http://") or text_source.startswith("https://"):
        return parse_catalog(_fetch_remote_catalog(text_source, timeout=timeout, transport=transport))

    if text_source:
        path = Path(text_source).expanduser()
    else:
        bundled = get_resource_path("biblecloud.data", DEFAULT_CATALOG_RESOURCE)
        if not bundled:
            raise CatalogError("Bundled chapter catalog is missing")
        path = Path(bundled)

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogError(f"Catalog file not found: {path}") from exc
    except (OSError, ValueError) as exc:
        raise CatalogError(f"Unable to read catalog {path}: {exc}") from exc
    return parse_catalog(payload)


def filter_chapters(chapters: Sequence[Chapter], term: Optional[str]) -> List[Chapter]:
    """Return the chapters matching ``term`` ignoring case and accents.

    A chapter matches when the normalized term is contained in its section,
    its chapter label, or ``"section chapter"``. An empty term returns the
    catalog unchanged.
    """
    if not term or not term.strip():
        return list(chapters)
    needle = normalize_text(term)
    matches: List[Chapter] = []
    for chapter in chapters:
        section = normalize_text(chapter.section)
        label = normalize_text(chapter.chapter)
        if needle in section or needle in label or needle in f"{section} {label}":
            matches.append(chapter)
    return matches


def index_chapters(chapters: Iterable[Chapter]) -> Dict[str, Chapter]:
    return {chapter.id: chapter for chapter in chapters}
