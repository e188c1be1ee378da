from __future__ import annotations

from typing import Optional

from conference_abstracts.extensions import db
from conference_abstracts.models.AuditLog import AuditLog
from conference_abstracts.security_utils import audit_log
from conference_abstracts.utils.logging_utils import get_logger

logger = get_logger("model_utils")


def record_event(
    *,
    event: str,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    ip: Optional[str] = None,
    detail=None,
) -> Optional[AuditLog]:
    """Best-effort audit write; a failure here never fails the request."""
    try:
        return audit_log(event, user_id=user_id, target_id=target_id, detail=detail, ip=ip)
    except Exception:
        db.session.rollback()
        logger.exception("record_event failed event=%s", event)
        return None
