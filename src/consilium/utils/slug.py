"""Utilities for generating deterministic, length-limited keys."""

from __future__ import annotations

import re
from typing import Pattern

KEY_MAX_LENGTH = 50

_NON_KEY_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_PATTERN: Pattern[str] = re.compile(r"\s+")


def derive_question_key(question: str | None, *, max_length: int = KEY_MAX_LENGTH) -> str:
    """Derive a snake_case key from ``question`` text.

    The result is lowercase, only contains ``[a-z0-9_]`` and is at most
    ``max_length`` characters long. The same text always yields the same key.
    """
    source = (question or "").lower()
    source = _NON_KEY_PATTERN.sub("", source).strip()
    key = _WHITESPACE_PATTERN.sub("_", source)
    return key[:max_length]


def snake_case(label: str) -> str:
    """Lowercase ``label`` and join whitespace-separated words with underscores."""
    return _WHITESPACE_PATTERN.sub("_", label.strip().lower())


__all__ = ["KEY_MAX_LENGTH", "derive_question_key", "snake_case"]
