from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import selectinload

from conference_abstracts.extensions import db
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.models.enumerations import CategoryBucket, Status
from conference_abstracts.services.category_classifier import classify_abstract
from conference_abstracts.utils.logging_utils import get_logger, log_context

from .base import (
    _emit_audit,
    _serialize_value,
    create_instance,
    delete_instance,
    get_instance,
    list_instances,
    update_instance,
)

logger = get_logger("model_utils")

_BUCKET_VALUES = {b.value for b in CategoryBucket}


@dataclass
class BulkUpdateResult:
    succeeded: List[int] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    records: List[Abstracts] = field(default_factory=list)
    # Subset of succeeded whose status actually moved.
    changed: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "succeeded_count": len(self.succeeded),
            "failed_count": len(self.failed),
        }


# Abstract ids are BIGINT-safe; anything wider never reaches the driver.
_ID_MIN = -(2 ** 63)
_ID_MAX = 2 ** 63 - 1
_DIGITS = re.compile(r"[0-9]+")


def parse_abstract_id(raw: Any) -> Tuple[Optional[int], Optional[str]]:
    """
    Returns ``(id, None)`` or ``(None, reason)`` where reason is
    ``invalid_id`` for values that are not whole numbers and ``not_found``
    for whole numbers no row can have.
    """
    if isinstance(raw, bool):
        return None, "invalid_id"
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            return None, "invalid_id"
        value = int(raw)
    elif isinstance(raw, str) and _DIGITS.fullmatch(raw.strip()):
        value = int(raw.strip())
    else:
        return None, "invalid_id"
    if not _ID_MIN <= value <= _ID_MAX:
        return None, "not_found"
    return value, None


def _now():
    return datetime.now(timezone.utc)


def create_abstract(
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, object]] = None,
    **attributes,
) -> Abstracts:
    ctx = {"function": "create_abstract", **(context or {})}
    attributes.setdefault("status", Status.PENDING.value)
    with log_context(module="abstract_utils", action="create_abstract", actor_id=actor_id):
        abstract = create_instance(
            Abstracts,
            commit=commit,
            flush=not commit,
            actor_id=actor_id,
            event_name="abstract.create",
            context=ctx,
            **attributes,
        )
        logger.info("create_abstract id=%s number=%s", _serialize_value(abstract.id), abstract.abstract_number)
    return abstract


def get_abstract_by_id(
    abstract_id,
    *,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, object]] = None,
) -> Optional[Abstracts]:
    key, reason = parse_abstract_id(abstract_id)
    if key is None:
        logger.info("get_abstract_by_id rejected id=%r reason=%s", abstract_id, reason)
        return None
    return get_instance(
        Abstracts,
        key,
        actor_id=actor_id,
        context={"function": "get_abstract_by_id", **(context or {})},
    )


def _status_clause(status: str):
    if status == Status.PENDING.value:
        return or_(Abstracts.status == status, Abstracts.status.is_(None))
    return Abstracts.status == status


def list_abstracts(
    *,
    status: Optional[str] = None,
    category: Optional[str] = None,
    limit: Optional[int] = None,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, object]] = None,
) -> Sequence[Abstracts]:
    """
    All abstracts, newest first. ``category`` is either a bucket name or an
    exact (case-insensitive) category label.
    """
    filters = []
    if status:
        filters.append(_status_clause(status))

    bucket = category.strip().lower() if category else None
    if bucket and bucket not in _BUCKET_VALUES:
        filters.append(func.lower(Abstracts.category) == bucket)
        bucket = None

    abstracts = list_instances(
        Abstracts,
        filters=filters,
        order_by=[desc(Abstracts.submission_date), desc(Abstracts.id)],
        limit=None if bucket else limit,
        query_options=[selectinload(Abstracts.files)],
        actor_id=actor_id,
        context={"function": "list_abstracts", **(context or {})},
    )
    if bucket:
        abstracts = [a for a in abstracts if classify_abstract(a.category, a.presentation_type).value == bucket]
        if limit is not None:
            abstracts = abstracts[:limit]
    return abstracts


def list_user_abstracts(
    user_id: int,
    *,
    actor_id: Optional[str] = None,
) -> Sequence[Abstracts]:
    return list_instances(
        Abstracts,
        filters=[Abstracts.user_id == user_id],
        order_by=[desc(Abstracts.submission_date), desc(Abstracts.id)],
        query_options=[selectinload(Abstracts.files)],
        actor_id=actor_id,
        context={"function": "list_user_abstracts", "user_id": user_id},
    )


def update_abstract(
    abstract: Abstracts,
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, object]] = None,
    **attributes,
) -> Abstracts:
    attributes["updated_at"] = _now()
    return update_instance(
        abstract,
        commit=commit,
        actor_id=actor_id,
        event_name="abstract.update",
        context={"function": "update_abstract", "abstract_id": abstract.id, **(context or {})},
        **attributes,
    )


def update_status(
    abstract: Abstracts,
    status: str,
    comments: Optional[str] = None,
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
) -> Abstracts:
    return update_instance(
        abstract,
        commit=commit,
        actor_id=actor_id,
        event_name="abstract.status",
        context={"function": "update_status", "abstract_id": abstract.id},
        status=status,
        reviewer_comments=comments,
        updated_at=_now(),
    )


def _coerce_ids(raw_ids: Iterable[Any], result: BulkUpdateResult) -> List[int]:
    valid: List[int] = []
    for raw in raw_ids:
        value, reason = parse_abstract_id(raw)
        if value is None:
            result.failed.append({"id": raw, "error": reason})
            continue
        if value not in valid:
            valid.append(value)
    return valid


def bulk_update_status(
    abstract_ids: Iterable[Any],
    status: str,
    comments: Optional[str] = None,
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
) -> BulkUpdateResult:
    """
    Apply one status to many abstracts in a single transaction. Ids that are
    malformed or unknown are reported in ``failed``; the rest are updated.
    Database errors propagate after the caller (or this function) rolls back.
    """
    result = BulkUpdateResult()
    ids = _coerce_ids(abstract_ids, result)

    with log_context(module="abstract_utils", action="bulk_update_status", actor_id=actor_id):
        found = {a.id: a for a in db.session.query(Abstracts).filter(Abstracts.id.in_(ids)).all()} if ids else {}
        now = _now()
        for abstract_id in ids:
            abstract = found.get(abstract_id)
            if abstract is None:
                result.failed.append({"id": abstract_id, "error": "not_found"})
                continue
            if abstract.effective_status != status:
                result.changed.append(abstract_id)
            abstract.status = status
            abstract.reviewer_comments = comments
            abstract.updated_at = now
            result.succeeded.append(abstract_id)
            result.records.append(abstract)

        if commit:
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("bulk_update_status commit failed ids=%s", ids)
                raise
            _emit_audit(
                "abstract.bulk_status",
                actor_id,
                None,
                {"status": status, "succeeded": result.succeeded, "failed": result.failed},
            )
        logger.info(
            "bulk_update_status status=%s succeeded=%s failed=%s",
            status,
            len(result.succeeded),
            len(result.failed),
        )
    return result


def delete_abstract(
    abstract: Abstracts,
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
) -> bool:
    return delete_instance(
        Abstracts,
        abstract,
        commit=commit,
        actor_id=actor_id,
        event_name="abstract.delete",
        context={"function": "delete_abstract", "abstract_id": abstract.id},
    )
