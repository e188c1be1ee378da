from functools import wraps

from flask_jwt_extended import get_jwt, verify_jwt_in_request

from conference_abstracts.errors import Forbidden
from conference_abstracts.utils.logging_utils import get_logger

auth_log = get_logger("auth")


def require_roles(*roles):
    """Allow the view only for tokens whose ``role`` claim is in ``roles``."""
    allowed = {getattr(r, "value", r) for r in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            role = (get_jwt() or {}).get("role")
            if role not in allowed:
                auth_log.warning("role check failed role=%s required=%s endpoint=%s", role, sorted(allowed), fn.__name__)
                raise Forbidden("Insufficient permissions")
            return fn(*args, **kwargs)
        return wrapper
    return decorator
