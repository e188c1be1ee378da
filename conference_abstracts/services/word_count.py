"""Word counting and per-category word limits for abstract bodies."""

from __future__ import annotations

import re
from typing import Mapping, Optional

from flask import current_app

from conference_abstracts.errors import ValidationError
from conference_abstracts.services.category_classifier import classify_abstract

_WHITESPACE = re.compile(r"\s+")


def count_words(text: Optional[str]) -> int:
    collapsed = _WHITESPACE.sub(" ", (text or "").strip())
    if not collapsed:
        return 0
    return len(collapsed.split(" "))


def _limit_table() -> Mapping[str, int]:
    raw = current_app.config.get("ABSTRACT_WORD_LIMITS") or {}
    return {str(k).strip().lower(): int(v) for k, v in raw.items()}


def resolve_word_limit(presentation_type: Optional[str], category: Optional[str]) -> int:
    """
    Look up the limit by exact presentation type, then exact category, then
    the classified bucket. Unrecognised labels get the base default.
    """
    table = _limit_table()
    candidates = (
        (presentation_type or "").strip().lower(),
        (category or "").strip().lower(),
        classify_abstract(category, presentation_type).value,
    )
    for key in candidates:
        if key and key in table:
            return table[key]
    return int(current_app.config.get("ABSTRACT_WORD_LIMIT_DEFAULT", 300))


def enforce_word_limit(text: Optional[str], presentation_type: Optional[str], category: Optional[str]) -> int:
    """Return the word count, raising ``ValidationError`` when over the limit."""
    words = count_words(text)
    limit = resolve_word_limit(presentation_type, category)
    if words > limit:
        raise ValidationError(
            f"Abstract exceeds word limit. {words} words (max {limit})",
            word_count=words,
            limit=limit,
        )
    return words
