from datetime import timedelta
from typing import Optional

from flask import current_app, jsonify
from flask_jwt_extended import JWTManager, create_access_token

from conference_abstracts.models.User import User
from conference_abstracts.models.enumerations import Role
from conference_abstracts.utils.logging_utils import get_logger

auth_log = get_logger("auth")


def issue_admin_token(email: str) -> str:
    expires: timedelta = current_app.config.get("ADMIN_TOKEN_EXPIRES", timedelta(hours=2))
    return create_access_token(
        identity=email,
        additional_claims={"role": Role.ADMIN.value, "email": email},
        expires_delta=expires,
    )


def issue_user_token(user: User, expires: Optional[timedelta] = None) -> str:
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": Role.USER.value, "email": user.email},
        expires_delta=expires,
    )


def init_jwt_callbacks(jwt: JWTManager):
    # Every token failure mode gets the same JSON 401.
    def _reject(reason: str):
        auth_log.info("token rejected reason=%s", reason)
        return jsonify({
            "success": False,
            "error": "Unauthorized",
            "message": "Please log in",
        }), 401

    @jwt.unauthorized_loader
    def _missing_token(err_msg):
        return _reject("missing")

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _reject("expired")

    @jwt.invalid_token_loader
    def _invalid_token(err_msg):
        return _reject("invalid")

    @jwt.revoked_token_loader
    def _revoked_token(jwt_header, jwt_payload):
        return _reject("revoked")

    @jwt.needs_fresh_token_loader
    def _needs_fresh(jwt_header, jwt_payload):
        return _reject("not_fresh")
