from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from flask import has_request_context, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from conference_abstracts.extensions import db
from conference_abstracts.models.AuditLog import AuditLog
from conference_abstracts.models.enumerations import Role
from conference_abstracts.utils.logging_utils import get_logger

_request_log = get_logger("app")


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, resolved from JWT claims."""

    role: Role
    user_id: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def audit_id(self) -> Optional[str]:
        if self.user_id is not None:
            return str(self.user_id)
        return self.email

    def owns(self, abstract: Any) -> bool:
        return self.user_id is not None and getattr(abstract, "user_id", None) == self.user_id


def current_actor(optional: bool = False) -> Optional[Actor]:
    """
    Build an ``Actor`` from the token on the current request. Must be called
    inside ``@jwt_required()`` unless ``optional`` is set.
    """
    if optional:
        verify_jwt_in_request(optional=True)
    claims = get_jwt() or {}
    identity = get_jwt_identity()
    if identity is None:
        return None
    role = claims.get("role")
    if role == Role.ADMIN.value:
        return Actor(role=Role.ADMIN, email=str(identity))
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        return None
    return Actor(role=Role.USER, user_id=user_id, email=claims.get("email"))


def client_ip() -> Optional[str]:
    return request.remote_addr if has_request_context() else None


def log_structured(event: str, **fields: Any) -> None:
    _request_log.info("%s %s", event, json.dumps(fields, default=str, sort_keys=True))


def audit_log(
    event: str,
    *,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    detail: Optional[Any] = None,
    ip: Optional[str] = None,
) -> AuditLog:
    """Record an audit row in its own commit. Call only after business commits."""
    entry = AuditLog(
        event=event,
        user_id=user_id,
        target_id=target_id,
        ip=ip if ip is not None else client_ip(),
        detail=AuditLog.validate_detail_format(detail),
    )
    db.session.add(entry)
    db.session.commit()
    return entry
