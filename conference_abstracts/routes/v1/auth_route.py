import bcrypt
from flask import current_app, jsonify, request
from flask_jwt_extended import jwt_required, set_access_cookies, unset_jwt_cookies

from conference_abstracts.errors import Unauthorized, ValidationError
from conference_abstracts.models.enumerations import Role
from conference_abstracts.routes.v1 import api_bp
from conference_abstracts.routes.v1.common import _resolve_actor_context, log_audit_event
from conference_abstracts.schemas import AdminLoginSchema, LoginSchema, RegisterSchema, UserSchema, load_request
from conference_abstracts.security import issue_admin_token, issue_user_token
from conference_abstracts.utils.decorator import require_roles
from conference_abstracts.utils.logging_utils import get_logger
from conference_abstracts.utils.model_utils import user_utils

auth_log = get_logger("auth")
user_schema = UserSchema()


def _admin_password_matches(password: str) -> bool:
    stored = current_app.config.get("ADMIN_PASSWORD_HASH") or ""
    if not stored:
        auth_log.error("admin login attempted but ADMIN_PASSWORD_HASH is not configured")
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        auth_log.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
        return False


@api_bp.route('/admin/login', methods=['POST'])
def admin_login():
    """Exchange the configured admin credentials for a session token and cookie."""
    data = load_request(AdminLoginSchema(), request.get_json(silent=True))
    email = data["email"].strip().lower()
    configured = (current_app.config.get("ADMIN_EMAIL") or "").strip().lower()

    if email != configured or not _admin_password_matches(data["password"]):
        auth_log.warning("admin login failed email=%s ip=%s", email, request.remote_addr)
        log_audit_event("admin.login.failed", email, {"reason": "invalid_credentials"})
        raise Unauthorized("Invalid credentials")

    token = issue_admin_token(configured)
    expires = current_app.config["ADMIN_TOKEN_EXPIRES"]
    resp = jsonify({
        "success": True,
        "message": "Login successful",
        "token": token,
        "expires_in": int(expires.total_seconds()),
    })
    set_access_cookies(resp, token, max_age=int(expires.total_seconds()))
    auth_log.info("admin login email=%s ip=%s", configured, request.remote_addr)
    log_audit_event("admin.login.success", configured, {})
    return resp, 200


@api_bp.route('/admin/login', methods=['GET'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def admin_session():
    actor, context = _resolve_actor_context("admin_session")
    return jsonify({"success": True, "authenticated": True, "email": actor.email, "role": actor.role.value}), 200


@api_bp.route('/admin/login', methods=['DELETE'])
def admin_logout():
    resp = jsonify({"success": True, "message": "Logged out"})
    unset_jwt_cookies(resp)
    return resp, 200


@api_bp.route('/auth/register', methods=['POST'])
def register():
    data = load_request(RegisterSchema(), request.get_json(silent=True))
    email = data.pop("email").strip().lower()
    if user_utils.get_user_by_email(email) is not None:
        raise ValidationError("Email already registered")

    password = data.pop("password")
    user = user_utils.create_user(password, email=email, **data)
    auth_log.info("user registered id=%s email=%s", user.id, user.email)
    log_audit_event("user.register.success", str(user.id), {"email": user.email}, target_id=user.id)
    return jsonify({
        "success": True,
        "message": "Registration successful",
        "token": issue_user_token(user),
        "user": user_schema.dump(user),
    }), 201


@api_bp.route('/auth/login', methods=['POST'])
def login():
    data = load_request(LoginSchema(), request.get_json(silent=True))
    user = user_utils.get_user_by_email(data["email"])
    if user is None or not user.check_password(data["password"]):
        auth_log.warning("user login failed email=%s ip=%s", data["email"], request.remote_addr)
        raise Unauthorized("Invalid email or password")

    auth_log.info("user login id=%s", user.id)
    log_audit_event("user.login.success", str(user.id), {}, target_id=user.id)
    return jsonify({
        "success": True,
        "token": issue_user_token(user),
        "user": user_schema.dump(user),
    }), 200
