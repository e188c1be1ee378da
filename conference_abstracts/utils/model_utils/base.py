"""
Generic CRUD helpers shared by the per-model utils.

Every helper logs under the ``model_utils`` category with the model, action
and actor in the log context. Helpers that commit also write an audit row;
with ``commit=False`` the caller owns the transaction and the audit.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union

from conference_abstracts.extensions import db
from conference_abstracts.security_utils import audit_log
from conference_abstracts.utils.logging_utils import get_logger, log_context

ModelType = TypeVar("ModelType", bound=db.Model)

logger = get_logger("model_utils")

_SENSITIVE_TOKENS = ("password", "secret", "token", "credential")
# Long text columns are logged by length only.
_BULKY_FIELDS = ("abstract_content",)


def _serialize_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in data.items():
        lower = key.lower()
        if any(token in lower for token in _SENSITIVE_TOKENS):
            redacted[key] = "***REDACTED***"
        elif lower in _BULKY_FIELDS and isinstance(value, str):
            redacted[key] = f"<{len(value)} chars>"
        else:
            redacted[key] = _serialize_value(value)
    return redacted


def _identity(instance: Any) -> Optional[str]:
    value = getattr(instance, "id", None)
    return None if value is None else str(value)


def _emit_audit(event_name: str, actor_id: Optional[str], target_id: Optional[str], detail: Dict[str, Any]) -> None:
    """Audit writes are best-effort; the business change is already committed."""
    try:
        audit_log(
            event_name,
            user_id=None if actor_id is None else str(actor_id),
            target_id=target_id,
            detail=json.dumps(detail, default=_serialize_value),
        )
    except Exception:
        db.session.rollback()
        logger.exception("audit write failed event=%s", event_name)


@contextmanager
def _scope(model_name: str, action: str, actor_id: Optional[str], context: Optional[Dict[str, Any]]):
    fields: Dict[str, Any] = {"model": model_name, "action": action, "actor_id": actor_id}
    fields.update({f"ctx_{k}": v for k, v in (context or {}).items()})
    with log_context(**fields):
        yield


def _finish(instance: Any, *, commit: bool, flush: bool, event: str, actor_id: Optional[str], detail: Dict[str, Any], target_id: Optional[str] = None) -> None:
    if flush:
        db.session.flush()
    if commit:
        db.session.commit()
        _emit_audit(event, actor_id, target_id or _identity(instance), detail)


def create_instance(
    model_cls: Type[ModelType],
    commit: bool = True,
    flush: bool = False,
    *,
    actor_id: Optional[str] = None,
    event_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    **attributes: Any,
) -> ModelType:
    name = model_cls.__name__
    shown = _redact(attributes)
    with _scope(name, "create", actor_id, context):
        try:
            instance = model_cls(**attributes)
            db.session.add(instance)
            _finish(
                instance,
                commit=commit,
                flush=flush,
                event=event_name or f"{name.lower()}.create",
                actor_id=actor_id,
                detail={"operation": "create", "model": name, "attributes": shown},
            )
        except Exception:
            logger.exception("create %s failed attributes=%s", name, shown)
            raise
        logger.info("created %s id=%s commit=%s", name, _identity(instance), commit)
        return instance


def get_instance(
    model_cls: Type[ModelType],
    instance_id: Any,
    *,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[ModelType]:
    if instance_id is None:
        return None
    with _scope(model_cls.__name__, "get", actor_id, context):
        instance = db.session.get(model_cls, instance_id)
        logger.debug("get %s id=%s found=%s", model_cls.__name__, instance_id, instance is not None)
        return instance


def list_instances(
    model_cls: Type[ModelType],
    *,
    filters: Optional[Sequence[Any]] = None,
    order_by: Optional[Union[Any, Sequence[Any]]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    query_options: Optional[Sequence[Any]] = None,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[ModelType]:
    """Filtered, ordered, optionally paged list. ``filters`` are ANDed."""

    ordering = list(order_by) if isinstance(order_by, (list, tuple)) else [order_by] if order_by is not None else []
    with _scope(model_cls.__name__, "list", actor_id, context):
        query = db.session.query(model_cls).filter(*(filters or [])).order_by(*ordering)
        if query_options:
            query = query.options(*query_options)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        results = query.all()
        logger.debug("list %s count=%s limit=%s offset=%s", model_cls.__name__, len(results), limit, offset)
        return results


def update_instance(
    instance: ModelType,
    commit: bool = True,
    flush: bool = False,
    *,
    actor_id: Optional[str] = None,
    event_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    **attributes: Any,
) -> ModelType:
    """Set every given attribute, ``None`` included."""

    name = type(instance).__name__
    before = _redact({key: getattr(instance, key, None) for key in attributes})
    after = _redact(attributes)
    with _scope(name, "update", actor_id, context):
        try:
            for key, value in attributes.items():
                setattr(instance, key, value)
            _finish(
                instance,
                commit=commit,
                flush=flush,
                event=event_name or f"{name.lower()}.update",
                actor_id=actor_id,
                detail={"operation": "update", "model": name, "before": before, "after": after},
            )
        except Exception:
            logger.exception("update %s id=%s failed", name, _identity(instance))
            raise
        logger.info("updated %s id=%s fields=%s commit=%s", name, _identity(instance), sorted(attributes), commit)
        return instance


def delete_instance(
    model_cls: Type[ModelType],
    instance_or_id: Union[ModelType, Any],
    commit: bool = True,
    *,
    actor_id: Optional[str] = None,
    event_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> bool:
    """Delete by object or primary key; ``False`` when there is nothing to delete."""

    name = model_cls.__name__
    with _scope(name, "delete", actor_id, context):
        instance = instance_or_id if isinstance(instance_or_id, model_cls) else get_instance(model_cls, instance_or_id)
        if instance is None:
            logger.warning("delete %s skipped, id=%s not found", name, instance_or_id)
            return False

        target_id = _identity(instance)
        snapshot = _redact({column.key: getattr(instance, column.key, None) for column in instance.__table__.columns})
        try:
            db.session.delete(instance)
            _finish(
                instance,
                commit=commit,
                flush=False,
                event=event_name or f"{name.lower()}.delete",
                actor_id=actor_id,
                detail={"operation": "delete", "model": name, "snapshot": snapshot},
                target_id=target_id,
            )
        except Exception:
            logger.exception("delete %s id=%s failed", name, target_id)
            raise
        logger.info("deleted %s id=%s commit=%s", name, target_id, commit)
        return True
