from __future__ import annotations

import re
import unicodedata

_COMBINING_MARKS_RE = re.compile("[\u0300-\u036f]")


def normalize_text(text: str) -> str:
    """Lowercase ``text`` and strip combining diacritics for accent-insensitive matching."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return _COMBINING_MARKS_RE.sub("", decomposed)
