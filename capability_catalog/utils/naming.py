"""
Naming helpers shared by the backends and the cache manager.
"""

from __future__ import annotations

import re
from typing import Iterable

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def is_valid_identifier(value: str) -> bool:
    """True when `value` only uses alphanumerics, hyphens and underscores."""
    return bool(IDENTIFIER_PATTERN.fullmatch(value or ""))


def kebab_case(name: str) -> str:
    """Directory name used by the Darwin store: 'Read File' -> 'read-file'."""
    return name.replace(" ", "-").lower()


def cache_item_id(name: str) -> str:
    """
    Stable id for cache entries derived from a display name.

    The id carries no organization, so same-named capabilities in two
    organizations share it. Cache entries are keyed by (organization, id).
    """
    return (
        name.lower()
        .replace(" ", "_")
        .replace("-", "_")
        .replace(":", "")
        .replace(".", "_")
        .replace("/", "_")
    )


def search_terms(*chunks: str | Iterable[str] | None) -> list[str]:
    """
    Flatten text chunks into a deduplicated, lower-cased token list.
    Strings are split on whitespace; iterables contribute each element as-is.
    """
    terms: set[str] = set()
    for chunk in chunks:
        if chunk is None:
            continue
        words = chunk.split() if isinstance(chunk, str) else list(chunk)
        for word in words:
            token = word.strip().lower()
            if token:
                terms.add(token)
    return sorted(terms)
