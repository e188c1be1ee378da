# models/User.py

import logging
from datetime import datetime, timezone

import bcrypt

from conference_abstracts.models.enumerations import Role

from ..extensions import db

logger = logging.getLogger("auth")


class User(db.Model):
    """A conference delegate who submits abstracts."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(128), nullable=False)
    full_name = db.Column(db.String(150), nullable=True)
    institution = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    registration_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    abstracts = db.relationship("Abstracts", back_populates="user", lazy="dynamic")

    role = Role.USER

    # --- Password Handling ---
    def set_password(self, raw_password: str) -> None:
        self.password_hash = bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    def check_password(self, raw_password: str) -> bool:
        if not self.password_hash or not raw_password:
            return False
        try:
            return bcrypt.checkpw(raw_password.encode("utf-8"), self.password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Malformed password hash for user id=%s", self.id)
            return False

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "institution": self.institution,
            "phone": self.phone,
            "registration_id": self.registration_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User id={self.id} email={self.email}>"
