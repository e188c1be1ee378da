from __future__ import annotations

from typing import Optional

from sqlalchemy import func

from conference_abstracts.extensions import db
from conference_abstracts.models.User import User

from .base import create_instance


def get_user_by_email(email: str) -> Optional[User]:
    if not email:
        return None
    return db.session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def create_user(password: str, commit: bool = True, **attributes) -> User:
    user = create_instance(User, commit=False, event_name="user.create", context={"function": "create_user"}, **attributes)
    user.set_password(password)
    if commit:
        db.session.commit()
    return user
