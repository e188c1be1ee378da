"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``register_error_handlers`` renders them as JSON with a
``success`` flag so every API error has the same shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from conference_abstracts.utils.logging_utils import get_logger


class PortalError(Exception):
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.message}
        payload.update(self.details)
        return payload


class ValidationError(PortalError):
    status_code = 400
    default_message = "Validation failed"


class NotFound(PortalError):
    status_code = 404
    default_message = "Abstract not found"


class Unauthorized(PortalError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(Unauthorized):
    """Authenticated, but not allowed to perform this mutation."""

    status_code = 403
    default_message = "Forbidden"


class DependencyFailure(PortalError):
    """Storage, database or mail failure. Clients only see a generic message."""

    status_code = 503
    default_message = "Operation failed, please retry"

    def __init__(self, message: Optional[str] = None, *, dependency: str = "unknown", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.dependency = dependency
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.default_message, "retryable": True}


def register_error_handlers(app: Flask) -> None:
    error_log = get_logger("error")

    @app.errorhandler(PortalError)
    def _portal_error(exc: PortalError):
        if isinstance(exc, DependencyFailure):
            error_log.error(
                "dependency failure dependency=%s message=%s cause=%r",
                exc.dependency,
                exc.message,
                exc.cause,
            )
        else:
            error_log.info("%s: %s", exc.__class__.__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc: SQLAlchemyError):
        from conference_abstracts.extensions import db

        db.session.rollback()
        error_log.error("database error: %r", exc)
        return jsonify(DependencyFailure(dependency="database").to_dict()), DependencyFailure.status_code

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"success": False, "error": "not_found"}), 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return jsonify({"success": False, "error": "method_not_allowed"}), 405

    @app.errorhandler(413)
    def _too_large(e):
        return jsonify({"success": False, "error": "payload_too_large"}), 413

    @app.errorhandler(500)
    def _server_error(e):
        app.logger.exception("Unhandled server error")
        return jsonify({"success": False, "error": "internal_server_error"}), 500

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return jsonify({"success": False, "error": e.name}), e.code or 500
