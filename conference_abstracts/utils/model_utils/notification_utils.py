from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from conference_abstracts.extensions import db
from conference_abstracts.models.NotificationEvent import NotificationEvent
from conference_abstracts.models.enumerations import NotificationState

from .base import list_instances


def create_event(
    recipient: str,
    template: str,
    payload: Dict[str, Any],
    *,
    abstract_id: Optional[int] = None,
    commit: bool = True,
) -> NotificationEvent:
    event = NotificationEvent(
        recipient=recipient,
        template=template,
        payload=json.dumps(payload, default=str),
        abstract_id=abstract_id,
        status=NotificationState.QUEUED.value,
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def list_dispatchable(max_attempts: int, limit: Optional[int] = None) -> Sequence[NotificationEvent]:
    """Queued events plus failed ones that still have attempts left, oldest first."""
    return list_instances(
        NotificationEvent,
        filters=[
            NotificationEvent.status.in_([NotificationState.QUEUED.value, NotificationState.FAILED.value]),
            NotificationEvent.attempts < max_attempts,
        ],
        order_by=NotificationEvent.id,
        limit=limit,
        context={"function": "list_dispatchable"},
    )


def mark_sent(event: NotificationEvent) -> None:
    event.attempts = (event.attempts or 0) + 1
    event.status = NotificationState.SENT.value
    event.sent_at = datetime.now(timezone.utc)
    event.last_error = None
    db.session.commit()


def mark_failed(event: NotificationEvent, error: str) -> None:
    event.attempts = (event.attempts or 0) + 1
    event.status = NotificationState.FAILED.value
    event.last_error = (error or "")[:1000]
    db.session.commit()
