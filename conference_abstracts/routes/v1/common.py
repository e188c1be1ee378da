import json
from typing import Any, Dict, Optional, Tuple

from flask import request

from conference_abstracts.errors import Unauthorized, ValidationError
from conference_abstracts.security_utils import Actor, current_actor
from conference_abstracts.utils.logging_utils import update_log_context
from conference_abstracts.utils.model_utils import audit_log_utils


def log_audit_event(event_type, user_id, details, target_id=None):
    """Record an audit row for a finished request; never fails the request."""
    audit_log_utils.record_event(
        event=event_type,
        user_id=user_id,
        target_id=str(target_id) if target_id is not None else None,
        ip=request.remote_addr,
        detail=details,
    )


def _resolve_actor_context(action: str) -> Tuple[Actor, Dict[str, object]]:
    """
    Resolve the caller from the verified token and seed the log context so
    every line written while handling the request carries the route and actor.
    """
    actor = current_actor()
    if actor is None:
        raise Unauthorized("Authentication failed: Unable to resolve actor identity")

    context: Dict[str, object] = {"route": action, "actor_id": actor.audit_id, "role": actor.role.value}
    update_log_context(**context)
    return actor, context


def request_payload() -> Dict[str, Any]:
    """
    JSON body, or for multipart forms the ``data`` JSON field (falling back
    to the plain form fields).
    """
    if request.is_json:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return payload

    raw = request.form.get("data")
    if raw:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("Invalid JSON in 'data' field") from exc
        if not isinstance(payload, dict):
            raise ValidationError("'data' field must be a JSON object")
        return payload
    return request.form.to_dict()


def int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(f"'{name}' must be an integer") from exc
    if value < 1:
        raise ValidationError(f"'{name}' must be positive")
    return value
