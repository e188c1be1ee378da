"""
Map free-text presentation-type/category strings onto canonical buckets.

Form versions over the years used many spellings for the same session type,
so classification is a case-insensitive substring match evaluated against an
ordered rule list. The first matching rule wins; text that matches nothing is
an article. Reordering ``RULES`` changes results for overlapping labels, so it
must come with a ``RULESET_VERSION`` bump.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from conference_abstracts.models.enumerations import CategoryBucket

RULESET_VERSION = 1

DEFAULT_BUCKET = CategoryBucket.ARTICLE

Predicate = Callable[[str], bool]


def _has(*needles: str) -> Predicate:
    return lambda text: all(n in text for n in needles)


def _has_any(*needles: str) -> Predicate:
    return lambda text: any(n in text for n in needles)


def _has_without(needle: str, excluded: str) -> Predicate:
    return lambda text: needle in text and excluded not in text


RULES: List[Tuple[Predicate, CategoryBucket]] = [
    (_has_without("award", "thesis"), CategoryBucket.AWARD_PAPER),
    (_has("case", "report"), CategoryBucket.CASE_REPORT),
    (_has_without("poster", "picu"), CategoryBucket.POSTER),
    (_has_any("picu", "cafe"), CategoryBucket.PICU_CAFE),
    (_has_any("innovators", "thesis", "dm/drnb"), CategoryBucket.INNOVATORS),
    (_has_any("imaging", "radiology", "clinico"), CategoryBucket.IMAGING),
    (_has_any("article", "original"), CategoryBucket.ARTICLE),
]


def classify(text: Optional[str]) -> CategoryBucket:
    normalized = (text or "").lower()
    for predicate, bucket in RULES:
        if predicate(normalized):
            return bucket
    return DEFAULT_BUCKET


def classify_abstract(category: Optional[str], presentation_type: Optional[str] = None) -> CategoryBucket:
    """Classify by category, using the presentation type when category is blank."""
    return classify(category or presentation_type)
