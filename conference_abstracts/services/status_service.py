"""
Review workflow: admin status transitions and owner edits/deletes.

Admins may move an abstract between pending, approved and rejected at any
time. Owners may edit or delete only while it is pending. Notifications for
status changes are queued after the transaction commits and never affect
its outcome.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from conference_abstracts.errors import Forbidden, NotFound, Unauthorized, ValidationError
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.models.enumerations import TRANSITION_TARGETS
from conference_abstracts.security_utils import Actor
from conference_abstracts.services import notification_service
from conference_abstracts.services.submission_service import load_visible_abstract
from conference_abstracts.services.transactions import atomic
from conference_abstracts.services.word_count import enforce_word_limit
from conference_abstracts.utils.logging_utils import get_logger, log_context
from conference_abstracts.utils.model_utils import abstract_utils, audit_log_utils
from conference_abstracts.utils.model_utils.abstract_utils import BulkUpdateResult
from conference_abstracts.utils.normalization import (
    CANONICAL_FIELDS,
    missing_required_fields,
    normalize_abstract_payload,
)

review_log = get_logger("review")

_ALLOWED_TARGETS = tuple(s.value for s in TRANSITION_TARGETS)
_WORD_LIMIT_INPUTS = ("abstract_content", "presentation_type", "category")


def _require_admin(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise Unauthorized("Authentication required")
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    return actor


def validate_target_status(status: Any) -> str:
    value = str(status or "").strip().lower()
    if value not in _ALLOWED_TARGETS:
        raise ValidationError(
            "Invalid status. Must be one of: " + ", ".join(_ALLOWED_TARGETS),
            allowed=list(_ALLOWED_TARGETS),
        )
    return value


def _clean_comments(comments: Any) -> Optional[str]:
    if comments is None:
        return None
    text = str(comments).strip()
    return text or None


def transition_status(abstract_id: Any, status: Any, comments: Any = None, *, actor: Optional[Actor]) -> Abstracts:
    """Set one abstract's status. Re-applying the current status is a no-op success."""
    actor = _require_admin(actor)
    target = validate_target_status(status)
    note = _clean_comments(comments)

    with log_context(action="transition_status", abstract_id=abstract_id, actor_id=actor.audit_id):
        abstract = abstract_utils.get_abstract_by_id(abstract_id, actor_id=actor.audit_id)
        if abstract is None:
            raise NotFound("Abstract not found")

        previous = abstract.effective_status
        key = abstract.id
        with atomic("status update"):
            abstract_utils.update_status(abstract, target, note, commit=False, actor_id=actor.audit_id)

        review_log.info("status %s -> %s abstract_id=%s", previous, target, key)
        audit_log_utils.record_event(
            event="abstract.status.success",
            user_id=actor.audit_id,
            target_id=str(key),
            detail={"from": previous, "to": target, "comments": note},
        )

    if previous != target:
        notification_service.notify_status_change(abstract)
    return abstract


def bulk_transition(abstract_ids: Any, status: Any, comments: Any = None, *, actor: Optional[Actor]) -> BulkUpdateResult:
    """
    Apply one status to many abstracts. Unknown or malformed ids are reported
    per id; everything else is committed together.
    """
    actor = _require_admin(actor)
    target = validate_target_status(status)
    note = _clean_comments(comments)
    if not isinstance(abstract_ids, (list, tuple)) or not abstract_ids:
        raise ValidationError("Abstract IDs array is required")

    with log_context(action="bulk_transition", actor_id=actor.audit_id):
        with atomic("bulk status update"):
            result = abstract_utils.bulk_update_status(
                abstract_ids,
                target,
                note,
                commit=False,
                actor_id=actor.audit_id,
            )

        review_log.info(
            "bulk status=%s requested=%s succeeded=%s failed=%s",
            target,
            len(abstract_ids),
            len(result.succeeded),
            len(result.failed),
        )
        audit_log_utils.record_event(
            event="abstract.bulk_status.success",
            user_id=actor.audit_id,
            detail={"status": target, "succeeded": result.succeeded, "failed": result.failed},
        )

    changed = set(result.changed)
    for abstract in result.records:
        if abstract.id in changed:
            notification_service.notify_status_change(abstract)
    return result


def _ensure_pending(abstract: Abstracts, verb: str) -> None:
    if not abstract.is_pending:
        raise Forbidden(f"Cannot {verb} abstract that has been reviewed", status=abstract.effective_status)


def edit_abstract(abstract_id: Any, payload: Mapping[str, Any], *, actor: Optional[Actor]) -> Abstracts:
    """
    Content edit by the owner (or the admin) while the abstract is pending.
    Status is not editable here.
    """
    abstract = load_visible_abstract(abstract_id, actor)
    _ensure_pending(abstract, "edit")

    requested_status = payload.get("status")
    if requested_status is not None and str(requested_status).strip().lower() != abstract.effective_status:
        raise ValidationError("Status cannot be changed through an edit")

    fields = normalize_abstract_payload(payload, partial=True)
    if not fields:
        raise ValidationError("No editable fields provided", editable_fields=list(CANONICAL_FIELDS))

    merged = {field: getattr(abstract, field) for field in CANONICAL_FIELDS}
    merged.update(fields)
    missing = [f for f in missing_required_fields(merged) if f in fields]
    if missing:
        raise ValidationError("Missing required fields", missing_fields=missing)
    if any(f in fields for f in _WORD_LIMIT_INPUTS):
        enforce_word_limit(merged["abstract_content"], merged["presentation_type"], merged["category"])

    with log_context(action="edit_abstract", abstract_id=abstract.id, actor_id=actor.audit_id):
        with atomic("abstract update"):
            abstract_utils.update_abstract(abstract, commit=False, actor_id=actor.audit_id, **fields)
        review_log.info("abstract edited id=%s fields=%s", abstract.id, sorted(fields))
    return abstract


def delete_abstract(abstract_id: Any, *, actor: Optional[Actor]) -> int:
    """Owner-only delete while pending. Returns the deleted id."""
    abstract = load_visible_abstract(abstract_id, actor)
    if not actor.owns(abstract):
        raise Forbidden("Only the submitting user can delete an abstract")
    _ensure_pending(abstract, "delete")

    deleted_id = abstract.id
    with log_context(action="delete_abstract", abstract_id=deleted_id, actor_id=actor.audit_id):
        with atomic("abstract delete"):
            abstract_utils.delete_abstract(abstract, commit=False, actor_id=actor.audit_id)
        review_log.info("abstract deleted id=%s", deleted_id)
    return deleted_id


def bulk_result_payload(result: BulkUpdateResult) -> Mapping[str, Any]:
    data = dict(result.to_dict())
    data["updated"] = len(result.succeeded)
    return data

