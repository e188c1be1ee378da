from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from conference_abstracts.errors import DependencyFailure
from conference_abstracts.extensions import db
from conference_abstracts.utils.logging_utils import get_logger

error_log = get_logger("error")


@contextmanager
def atomic(operation: str):
    """
    Run the block as one unit of work: commit on success, roll back on any
    error. Database errors surface as a retryable ``DependencyFailure``.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        error_log.exception("database failure during %s", operation)
        raise DependencyFailure(f"{operation} failed", dependency="database", cause=exc) from exc
    except Exception:
        db.session.rollback()
        raise
