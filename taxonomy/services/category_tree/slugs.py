from __future__ import annotations

import re
import unicodedata
from typing import Callable


DEFAULT_SLUG = "categoria"
SLUG_MAX_LENGTH = 160


def slugify(value: str | None) -> str:
    norm = unicodedata.normalize("NFKD", str(value or ""))
    raw = "".join(ch for ch in norm if not unicodedata.combining(ch)).strip().lower()
    raw = re.sub(r"[^a-z0-9]+", "-", raw)
    raw = re.sub(r"-{2,}", "-", raw)
    raw = raw.strip("-")[:SLUG_MAX_LENGTH].strip("-")
    return raw or DEFAULT_SLUG


def first_free_slug(base: str, is_taken: Callable[[str], bool]) -> str:
    """``base``, or ``base-1``, ``base-2``, ... whichever ``is_taken`` rejects first."""
    candidate = base
    counter = 1
    while is_taken(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
