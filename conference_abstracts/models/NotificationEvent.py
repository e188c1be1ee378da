import json
from datetime import datetime, timezone

from conference_abstracts.extensions import db
from conference_abstracts.models.enumerations import NotificationState


class NotificationEvent(db.Model):
    """Outbox row written after a business transaction commits."""

    __tablename__ = "notification_events"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    recipient = db.Column(db.String(120), nullable=False)
    template = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.Text, nullable=False, default="{}")
    status = db.Column(db.String(16), nullable=False, default=NotificationState.QUEUED.value, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    abstract_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    sent_at = db.Column(db.DateTime, nullable=True)

    @property
    def data(self) -> dict:
        try:
            return json.loads(self.payload or "{}")
        except ValueError:
            return {}

    def __repr__(self):
        return f"<NotificationEvent {self.id} {self.template} -> {self.recipient} [{self.status}]>"
