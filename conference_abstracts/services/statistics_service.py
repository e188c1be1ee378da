"""Status counts over a set of abstracts, globally and per category bucket."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from conference_abstracts.models.enumerations import CategoryBucket, Status
from conference_abstracts.services.category_classifier import classify_abstract
from conference_abstracts.utils.model_utils import abstract_utils

STATUS_KEYS = tuple(s.value for s in Status)


def _empty_counts() -> Dict[str, int]:
    counts = {"total": 0}
    counts.update({key: 0 for key in STATUS_KEYS})
    return counts


def _status_of(abstract: Any) -> str:
    status = getattr(abstract, "status", None) or Status.PENDING.value
    # Unknown legacy values are counted with pending rather than dropped.
    return status if status in STATUS_KEYS else Status.PENDING.value


def compute_statistics(abstracts: Iterable[Any]) -> Dict[str, Any]:
    """
    Build a fresh snapshot from ``abstracts``.

    The result is never cached: callers pass the rows they just queried so the
    snapshot reflects the latest committed state.
    """
    overall = _empty_counts()
    by_category = {bucket.value: _empty_counts() for bucket in CategoryBucket}
    owners = set()

    for abstract in abstracts:
        status = _status_of(abstract)
        bucket = classify_abstract(
            getattr(abstract, "category", None),
            getattr(abstract, "presentation_type", None),
        ).value

        overall["total"] += 1
        overall[status] += 1
        by_category[bucket]["total"] += 1
        by_category[bucket][status] += 1

        owner = getattr(abstract, "user_id", None)
        if owner is not None:
            owners.add(owner)

    overall["total_users"] = len(owners)
    return {**overall, "by_category": by_category}


def statistics_snapshot(user_id: Optional[int] = None) -> Dict[str, Any]:
    """Query the current rows (all, or one user's) and aggregate them."""
    if user_id is not None:
        rows = abstract_utils.list_user_abstracts(user_id)
    else:
        rows = abstract_utils.list_abstracts()
    return compute_statistics(rows)
