from enum import Enum
# enums.py


class Role(str, Enum):
    ADMIN = 'admin'
    USER = 'user'


class Status(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    # Counted in statistics; no transition leads here.
    FINAL_SUBMITTED = 'final_submitted'


# Targets accepted by single and bulk transitions.
TRANSITION_TARGETS = (Status.PENDING, Status.APPROVED, Status.REJECTED)


class CategoryBucket(str, Enum):
    ARTICLE = 'article'
    AWARD_PAPER = 'award_paper'
    CASE_REPORT = 'case_report'
    POSTER = 'poster'
    PICU_CAFE = 'picu_cafe'
    INNOVATORS = 'innovators'
    IMAGING = 'imaging'


class NotificationTemplate(str, Enum):
    SUBMISSION_CONFIRMATION = 'submission_confirmation'
    STATUS_UPDATE = 'status_update'


class NotificationState(str, Enum):
    QUEUED = 'queued'
    SENT = 'sent'
    FAILED = 'failed'
