from __future__ import annotations

import re

_WORD_RE = re.compile(r"[A-Za-z0-9]+")


def keyword_set(text: str | None, min_length: int = 3) -> set[str]:
    """Lowercase words of at least *min_length* characters, punctuation stripped."""
    if not text:
        return set()
    return {w.lower() for w in _WORD_RE.findall(text) if len(w) >= min_length}
