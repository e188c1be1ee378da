import secrets
import string
import time

_ABSTRACT_ALPHABET = string.ascii_uppercase + string.digits


def generate_abstract_number() -> str:
    """Human-readable abstract reference, e.g. ``ABST-1718000000000-X7K2Q``."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ABSTRACT_ALPHABET) for _ in range(5))
    return f"ABST-{millis}-{suffix}"
