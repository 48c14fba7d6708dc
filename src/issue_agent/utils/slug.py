"""Utilities for generating branch-safe, length-limited slugs."""

from __future__ import annotations

import re
from typing import Pattern

_NON_ALNUM_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")

DEFAULT_SLUG_LENGTH = 40


def slugify(
    value: str | None,
    *,
    fallback: str = "",
    max_length: int = DEFAULT_SLUG_LENGTH,
) -> str:
    """Normalize ``value`` into a lowercase, hyphen-separated slug.

    Runs of characters outside ``[a-z0-9]`` collapse into a single hyphen,
    leading and trailing hyphens are trimmed and the result is capped at
    ``max_length`` characters without leaving a dangling separator.
    """
    source = (value or "").strip().lower()
    slug = _normalize(source)
    if not slug:
        slug = _normalize((fallback or "").strip().lower())

    if max_length > 0 and len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")

    return slug


def branch_name(prefix: str, number: int, title: str, *, max_length: int = DEFAULT_SLUG_LENGTH) -> str:
    """Return the working branch name for issue ``number``."""
    slug = slugify(title, max_length=max_length)
    if not slug:
        return f"{prefix}{number}"
    return f"{prefix}{number}-{slug}"


def _normalize(value: str) -> str:
    slug = _NON_ALNUM_PATTERN.sub("-", value)
    slug = _HYPHEN_COLLAPSE.sub("-", slug)
    return slug.strip("-")


__all__ = ["DEFAULT_SLUG_LENGTH", "branch_name", "slugify"]
