"""Deterministic integer ids.

Book ids come from a normalized title and author so the same book typed
slightly differently resolves to one row. Rows owned by a reader are keyed on
the raw parts: user ids are opaque and must never be folded together.
"""

import hashlib
import re


def _digest(key: str) -> int:
    return int(hashlib.sha256(key.encode()).hexdigest()[:15], 16)


def _fold(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())[:50]


def make_book_id(title: str, author: str) -> int:
    return _digest(f"{_fold(title)}:{_fold(author)}")


def make_row_id(*parts: str | int) -> int:
    """Id for a row identified by ``parts`` taken verbatim."""
    return _digest("\x1f".join(f"{type(p).__name__}={p}" for p in parts))


def make_slug(title: str) -> str:
    s = title.lower().strip()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")[:120] or "book"
