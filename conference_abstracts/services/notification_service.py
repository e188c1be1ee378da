"""
Submitter notifications through an outbox table.

Business code calls ``notify_*`` only after its own transaction committed.
That writes a ``NotificationEvent`` row; ``dispatch_pending`` (the
``flask notifications dispatch`` worker) renders and mails it. Nothing in
here raises into the caller: a lost notification is logged, never fatal.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import current_app

from conference_abstracts.extensions import db
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.models.NotificationEvent import NotificationEvent
from conference_abstracts.models.enumerations import NotificationTemplate
from conference_abstracts.utils.logging_utils import get_logger, log_context
from conference_abstracts.utils.model_utils import notification_utils
from conference_abstracts.utils.services.mail import send_mail

notify_log = get_logger("notification")

_SUBJECTS = {
    NotificationTemplate.SUBMISSION_CONFIRMATION.value: "Abstract received: {abstract_number}",
    NotificationTemplate.STATUS_UPDATE.value: "Abstract {abstract_number} is now {status}",
}


def render(template: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    if template not in _SUBJECTS:
        raise ValueError(f"unknown notification template: {template}")
    subject = _SUBJECTS[template].format(
        abstract_number=payload.get("abstract_number", ""),
        status=str(payload.get("status", "")).upper(),
    )
    lines = [f"Dear {payload.get('presenter_name') or 'Delegate'},", ""]
    if template == NotificationTemplate.SUBMISSION_CONFIRMATION.value:
        lines += [
            f"Your abstract \"{payload.get('title', '')}\" has been submitted.",
            f"Abstract number: {payload.get('abstract_number', '')}",
            f"Category: {payload.get('category', '')}",
            "It is now pending review. You can edit it until a decision is made.",
        ]
    else:
        lines += [
            f"The review status of your abstract \"{payload.get('title', '')}\" "
            f"({payload.get('abstract_number', '')}) is now {str(payload.get('status', '')).upper()}.",
        ]
        if payload.get("comments"):
            lines += ["", f"Reviewer comments: {payload['comments']}"]
    lines += ["", current_app.config.get("APP_NAME", "Conference Abstracts")]
    return subject, "\n".join(lines)


def _abstract_payload(abstract: Abstracts) -> Dict[str, Any]:
    return {
        "abstract_id": abstract.id,
        "abstract_number": abstract.abstract_number,
        "title": abstract.title,
        "presenter_name": abstract.presenter_name,
        "category": abstract.category,
        "status": abstract.effective_status,
        "comments": abstract.reviewer_comments,
    }


def _recipient_for(abstract: Abstracts) -> Optional[str]:
    user = abstract.user
    return user.email if user is not None else None


def enqueue(recipient: Optional[str], template: str, payload: Dict[str, Any], *, abstract_id: Optional[int] = None) -> Optional[NotificationEvent]:
    if not recipient:
        notify_log.info("notification skipped: no recipient template=%s abstract_id=%s", template, abstract_id)
        return None
    with log_context(template=template, abstract_id=abstract_id):
        try:
            event = notification_utils.create_event(recipient, template, payload, abstract_id=abstract_id)
            notify_log.info("notification queued id=%s recipient=%s", event.id, recipient)
            if current_app.config.get("NOTIFICATIONS_DISPATCH_INLINE"):
                dispatch_event(event)
        except Exception:
            db.session.rollback()
            notify_log.exception("failed to enqueue notification recipient=%s", recipient)
            return None
        return event


def _notify(abstract: Abstracts, template: str) -> Optional[NotificationEvent]:
    # Runs after the business commit, so reading the abstract may hit the
    # database again; a failure there must not reach the caller either.
    try:
        abstract_id = abstract.id
        recipient = _recipient_for(abstract)
        payload = _abstract_payload(abstract)
    except Exception:
        db.session.rollback()
        notify_log.exception("failed to build notification template=%s", template)
        return None
    return enqueue(recipient, template, payload, abstract_id=abstract_id)


def notify_submission(abstract: Abstracts) -> Optional[NotificationEvent]:
    return _notify(abstract, NotificationTemplate.SUBMISSION_CONFIRMATION.value)


def notify_status_change(abstract: Abstracts) -> Optional[NotificationEvent]:
    return _notify(abstract, NotificationTemplate.STATUS_UPDATE.value)


def dispatch_event(event: NotificationEvent) -> bool:
    with log_context(notification_id=event.id, template=event.template):
        try:
            subject, body = render(event.template, event.data)
            status_code = send_mail(event.recipient, subject, body)
        except Exception as exc:
            notify_log.exception("notification dispatch crashed")
            _safe_mark(notification_utils.mark_failed, event, repr(exc))
            return False

        if 200 <= status_code < 300:
            _safe_mark(notification_utils.mark_sent, event)
            notify_log.info("notification sent recipient=%s", event.recipient)
            return True

        _safe_mark(notification_utils.mark_failed, event, f"mail gateway returned {status_code}")
        notify_log.warning("notification failed recipient=%s status=%s", event.recipient, status_code)
        return False


def _safe_mark(fn, event: NotificationEvent, *args) -> None:
    try:
        fn(event, *args)
    except Exception:
        db.session.rollback()
        notify_log.exception("could not record notification outcome id=%s", event.id)


def dispatch_pending(limit: Optional[int] = None) -> Dict[str, int]:
    """Send queued notifications (and retry failed ones with attempts left)."""
    max_attempts = current_app.config.get("NOTIFICATIONS_MAX_ATTEMPTS", 3)
    batch = limit or current_app.config.get("NOTIFICATIONS_BATCH_SIZE", 50)
    events = notification_utils.list_dispatchable(max_attempts, limit=batch)
    sent = failed = 0
    for event in events:
        if dispatch_event(event):
            sent += 1
        else:
            failed += 1
    notify_log.info("dispatch run processed=%s sent=%s failed=%s", len(events), sent, failed)
    return {"processed": len(events), "sent": sent, "failed": failed}
