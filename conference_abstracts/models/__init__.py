from .User import User
from .Abstract import Abstracts, UploadedFile
from .AuditLog import AuditLog
from .NotificationEvent import NotificationEvent

__all__ = [
    "User",
    "Abstracts",
    "UploadedFile",
    "AuditLog",
    "NotificationEvent",
]
