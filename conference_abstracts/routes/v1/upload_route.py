from flask import current_app, jsonify, redirect, request
from flask_jwt_extended import jwt_required

from conference_abstracts.errors import Forbidden, NotFound, ValidationError
from conference_abstracts.models.enumerations import Role
from conference_abstracts.routes.v1 import api_bp
from conference_abstracts.routes.v1.common import _resolve_actor_context, log_audit_event
from conference_abstracts.services.storage import get_storage, new_submission_id, validate_upload
from conference_abstracts.services.submission_service import read_request_files
from conference_abstracts.utils.decorator import require_roles
from conference_abstracts.utils.logging_utils import get_logger
from conference_abstracts.utils.model_utils import uploaded_file_utils

storage_log = get_logger("storage")


@api_bp.route('/upload', methods=['POST'])
@jwt_required()
@require_roles(Role.USER.value, Role.ADMIN.value)
def upload_files():
    """
    Pre-upload attachments before the abstract itself is submitted.

    Each file is validated on its own; rejected files are reported in
    ``errors`` while the rest are stored. The returned ``uploadedFiles``
    entries can be passed back as ``uploaded_files`` on submission.
    """
    actor, context = _resolve_actor_context("upload_files")
    files = read_request_files(request.files.getlist("files") + request.files.getlist("file"))
    if not files:
        raise ValidationError("No files provided")

    max_files = current_app.config["UPLOAD_MAX_FILES"]
    if len(files) > max_files:
        raise ValidationError(f"Maximum {max_files} files allowed", max_files=max_files)

    storage = get_storage()
    submission_id = new_submission_id(actor.user_id)
    uploaded, errors = [], []
    for f in files:
        try:
            content_type = validate_upload(f.filename, f.content_type, len(f.data))
        except ValidationError as exc:
            errors.append(exc.message)
            continue
        uploaded.append(storage.upload_bytes(f.data, f.filename, content_type, submission_id).to_dict())

    storage_log.info("pre-upload submission_id=%s stored=%s rejected=%s", submission_id, len(uploaded), len(errors))
    log_audit_event(
        event_type="upload.success" if uploaded else "upload.failed",
        user_id=actor.audit_id,
        details={"submission_id": submission_id, "stored": len(uploaded), "errors": errors},
    )
    return jsonify({
        "success": bool(uploaded),
        "uploadedFiles": uploaded,
        "errors": errors,
        "totalFiles": len(uploaded),
    }), 200 if uploaded else 400


@api_bp.route('/files/sign', methods=['GET'])
@jwt_required()
def sign_file():
    """Redirect to a short-lived signed URL for a stored object."""
    actor, context = _resolve_actor_context("sign_file")
    key = (request.args.get("key") or "").strip()
    if not key:
        raise ValidationError("Missing 'key' query parameter")

    storage = get_storage()
    if not actor.is_admin:
        rows = uploaded_file_utils.find_files_by_key_or_path(key, storage.object_url(key))
        if not rows:
            raise NotFound("File not found")
        if not any(actor.owns(row.abstract) for row in rows):
            raise Forbidden("You can only access your own files")

    return redirect(storage.presigned_url(key), code=302)
