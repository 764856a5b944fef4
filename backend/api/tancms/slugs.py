"""Slug generation and scoped uniqueness."""

from __future__ import annotations

from typing import Callable

from slugify import slugify as _slugify

# Base for names with nothing sluggable in them ("!!!", emoji-only, ...).
FALLBACK_SLUG = "untitled"


def slugify(text: str) -> str:
    """
    Lowercase, hyphen-separated ASCII slug. Diacritics are transliterated,
    punctuation dropped. Idempotent: slugify(slugify(x)) == slugify(x).
    Never empty: text with no usable characters gives FALLBACK_SLUG.
    """
    return _slugify(text or "", lowercase=True) or FALLBACK_SLUG


def uniquify(base: str, exists: Callable[[str], bool]) -> str:
    """
    Return the first of `base, base-1, base-2, ...` for which `exists` is false.

    `exists` is the scope predicate (global, per content type, excluding self
    on updates). The caller persists the result.
    """
    candidate = base
    counter = 1
    while exists(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
