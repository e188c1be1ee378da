"""
Canonical field names for abstract payloads.

Older form versions posted the same data under different keys (``author``
instead of ``presenter_name``, ``affiliation`` instead of
``institution_name`` ...). Everything past the request boundary works on the
canonical shape produced here.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

CANONICAL_FIELDS = (
    "title",
    "presenter_name",
    "institution_name",
    "presentation_type",
    "category",
    "abstract_content",
    "co_authors",
    "registration_id",
)

REQUIRED_FIELDS = (
    "title",
    "presenter_name",
    "institution_name",
    "presentation_type",
    "category",
    "abstract_content",
)

# Legacy aliases in order of precedence; the canonical key always wins.
FIELD_ALIASES: Dict[str, tuple] = {
    "title": ("abstract_title", "abstractTitle"),
    "presenter_name": ("presenterName", "author", "author_name"),
    "institution_name": ("institutionName", "institution", "affiliation"),
    "presentation_type": ("presentationType", "submission_type"),
    "category": ("abstract_category",),
    "abstract_content": ("abstractContent", "abstract", "content", "abstract_text"),
    "co_authors": ("coAuthors", "co_author", "coauthors"),
    "registration_id": ("registrationId", "registration_number", "registrationNumber"),
}


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        # co-authors arrive as a list from the multi-author form
        return ", ".join(str(v).strip() for v in value if str(v).strip())
    return value


def normalize_abstract_payload(data: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """
    Map a raw request body onto the canonical abstract fields.

    With ``partial`` only the fields that were actually supplied are returned
    (edits); otherwise every canonical field is present, ``None`` when absent.
    """
    normalized: Dict[str, Any] = {}
    for field in CANONICAL_FIELDS:
        present = False
        value = None
        for key in (field,) + FIELD_ALIASES.get(field, ()):
            if key in data:
                present = True
                value = data[key]
                break
        if present or not partial:
            normalized[field] = _clean(value)
    return normalized


def missing_required_fields(data: Mapping[str, Any]) -> list:
    missing = []
    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing
