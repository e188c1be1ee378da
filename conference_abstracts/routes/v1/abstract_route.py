import uuid

from flask import current_app, jsonify, redirect, request, send_file
from flask_jwt_extended import jwt_required

from conference_abstracts.errors import NotFound, PortalError, ValidationError
from conference_abstracts.models.enumerations import Role, Status
from conference_abstracts.routes.v1 import api_bp
from conference_abstracts.routes.v1.common import (
    _resolve_actor_context,
    int_arg,
    log_audit_event,
    request_payload,
)
from conference_abstracts.schemas import AbstractSchema, BulkStatusSchema, StatusUpdateSchema, load_request
from conference_abstracts.services import statistics_service, status_service, submission_service
from conference_abstracts.services.statistics_service import compute_statistics
from conference_abstracts.services.storage import get_storage
from conference_abstracts.utils.decorator import require_roles
from conference_abstracts.utils.excel import create_abstracts_excel, workbook_bytes
from conference_abstracts.utils.logging_utils import get_logger
from conference_abstracts.utils.model_utils import abstract_utils, uploaded_file_utils

abstract_schema = AbstractSchema()
abstracts_schema = AbstractSchema(many=True)

submission_log = get_logger("submission")

_STATUS_FILTERS = tuple(s.value for s in Status)


def _incoming_files():
    storages = request.files.getlist("files") + request.files.getlist("file")
    return submission_service.read_request_files(storages)


def _status_filter():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in _STATUS_FILTERS:
        raise ValidationError(
            "Invalid status filter. Must be one of: " + ", ".join(_STATUS_FILTERS),
            allowed=list(_STATUS_FILTERS),
        )
    return status


@api_bp.route('/abstracts', methods=['POST'])
@jwt_required()
@require_roles(Role.USER.value)
def create_abstract():
    """Submit a new abstract (JSON, or multipart with attachments)."""
    actor, context = _resolve_actor_context("create_abstract")
    try:
        payload = request_payload()
        abstract = submission_service.submit_abstract(payload, actor, _incoming_files())
    except PortalError as exc:
        log_audit_event(
            event_type="abstract.create.failed",
            user_id=actor.audit_id,
            details={"error": exc.message, "status_code": exc.status_code},
        )
        raise

    log_audit_event(
        event_type="abstract.create.success",
        user_id=actor.audit_id,
        details={"abstract_number": abstract.abstract_number, "bucket": abstract.bucket},
        target_id=abstract.id,
    )
    return jsonify({
        "success": True,
        "message": "Abstract submitted successfully",
        "abstract": abstract_schema.dump(abstract),
    }), 201


@api_bp.route('/abstracts', methods=['GET'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def list_abstracts():
    """Admin listing with optional status/category/limit filters plus global statistics."""
    actor, context = _resolve_actor_context("list_abstracts")
    status = _status_filter()
    category = (request.args.get("category") or "").strip() or None
    limit = int_arg("limit", current_app.config.get("ABSTRACT_LIST_DEFAULT_LIMIT", 100))

    abstracts = abstract_utils.list_abstracts(
        status=status,
        category=category,
        limit=limit,
        actor_id=actor.audit_id,
        context=context,
    )
    return jsonify({
        "success": True,
        "abstracts": abstracts_schema.dump(abstracts),
        "count": len(abstracts),
        "filters": {"status": status, "category": category, "limit": limit},
        "statistics": statistics_service.statistics_snapshot(),
    }), 200


@api_bp.route('/abstracts/statistics', methods=['GET'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def get_statistics():
    _resolve_actor_context("get_statistics")
    return jsonify({"success": True, "statistics": statistics_service.statistics_snapshot()}), 200


@api_bp.route('/abstracts/user', methods=['GET'])
@jwt_required()
@require_roles(Role.USER.value)
def get_user_abstracts():
    """The caller's own abstracts with their personal counts."""
    actor, context = _resolve_actor_context("get_user_abstracts")
    abstracts = abstract_utils.list_user_abstracts(actor.user_id, actor_id=actor.audit_id)
    return jsonify({
        "success": True,
        "abstracts": abstracts_schema.dump(abstracts),
        "statistics": compute_statistics(abstracts),
    }), 200


@api_bp.route('/abstracts/<abstract_id>', methods=['GET'])
@jwt_required()
def get_abstract(abstract_id):
    actor, context = _resolve_actor_context("get_abstract")
    abstract = submission_service.load_visible_abstract(abstract_id, actor)
    return jsonify({"success": True, "abstract": abstract_schema.dump(abstract)}), 200


@api_bp.route('/abstracts/<abstract_id>', methods=['PUT'])
@jwt_required()
def update_abstract(abstract_id):
    """Content edit while the abstract is still pending."""
    actor, context = _resolve_actor_context("update_abstract")
    try:
        abstract = status_service.edit_abstract(abstract_id, request_payload(), actor=actor)
    except PortalError as exc:
        log_audit_event(
            event_type="abstract.update.failed",
            user_id=actor.audit_id,
            details={"error": exc.message, "status_code": exc.status_code},
            target_id=abstract_id,
        )
        raise

    log_audit_event(
        event_type="abstract.update.success",
        user_id=actor.audit_id,
        details={"abstract_number": abstract.abstract_number},
        target_id=abstract.id,
    )
    return jsonify({
        "success": True,
        "message": "Abstract updated successfully",
        "abstract": abstract_schema.dump(abstract),
    }), 200


@api_bp.route('/abstracts/<abstract_id>', methods=['DELETE'])
@jwt_required()
def delete_abstract(abstract_id):
    actor, context = _resolve_actor_context("delete_abstract")
    try:
        deleted_id = status_service.delete_abstract(abstract_id, actor=actor)
    except PortalError as exc:
        log_audit_event(
            event_type="abstract.delete.failed",
            user_id=actor.audit_id,
            details={"error": exc.message, "status_code": exc.status_code},
            target_id=abstract_id,
        )
        raise

    log_audit_event(
        event_type="abstract.delete.success",
        user_id=actor.audit_id,
        details={},
        target_id=deleted_id,
    )
    return jsonify({"success": True, "message": "Abstract deleted successfully", "deleted_id": deleted_id}), 200


@api_bp.route('/admin/abstracts/status', methods=['POST'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def update_abstract_status():
    """Approve, reject or reset a single abstract."""
    actor, context = _resolve_actor_context("update_abstract_status")
    data = load_request(StatusUpdateSchema(), request.get_json(silent=True))
    abstract = status_service.transition_status(
        data["abstract_id"],
        data["status"],
        data.get("comments"),
        actor=actor,
    )
    return jsonify({
        "success": True,
        "message": f"Abstract {abstract.effective_status} successfully",
        "abstract": abstract_schema.dump(abstract),
    }), 200


@api_bp.route('/abstracts/bulk-update', methods=['POST'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def bulk_update_status():
    actor, context = _resolve_actor_context("bulk_update_status")
    data = load_request(BulkStatusSchema(), request.get_json(silent=True))
    result = status_service.bulk_transition(
        data["abstract_ids"],
        data["status"],
        data.get("comments"),
        actor=actor,
    )
    body = {"success": True, "status": data["status"].strip().lower()}
    body.update(status_service.bulk_result_payload(result))
    return jsonify(body), 200


@api_bp.route('/abstracts/<abstract_id>/files', methods=['POST'])
@jwt_required()
def upload_abstract_files(abstract_id):
    """Attach further files to an existing abstract."""
    actor, context = _resolve_actor_context("upload_abstract_files")
    try:
        abstract = submission_service.attach_files(abstract_id, _incoming_files(), actor)
    except PortalError as exc:
        log_audit_event(
            event_type="abstract.files.failed",
            user_id=actor.audit_id,
            details={"error": exc.message, "status_code": exc.status_code},
            target_id=abstract_id,
        )
        raise

    log_audit_event(
        event_type="abstract.files.success",
        user_id=actor.audit_id,
        details={"file_count": len(abstract.files)},
        target_id=abstract.id,
    )
    return jsonify({
        "success": True,
        "message": "Files uploaded successfully",
        "abstract": abstract_schema.dump(abstract),
    }), 200


def _download_targets(abstract, storage, actor_id=None):
    targets = []
    for f in uploaded_file_utils.get_files_by_abstract_id(abstract.id, actor_id=actor_id):
        key = f.file_key or storage.key_from_path(f.file_path)
        if key:
            targets.append((f.file_name, key))
    if not targets and abstract.file_path:
        key = storage.key_from_path(abstract.file_path)
        if key:
            targets.append((abstract.file_name or key.rsplit("/", 1)[-1], key))
    return targets


@api_bp.route('/abstracts/download/<abstract_id>', methods=['GET'])
@jwt_required()
def download_abstract_files(abstract_id):
    """
    Redirect to a signed URL when the abstract has exactly one file, or list
    signed URLs for all of them (``?format=json`` forces the list).
    """
    actor, context = _resolve_actor_context("download_abstract_files")
    abstract = submission_service.load_visible_abstract(abstract_id, actor)
    storage = get_storage()
    targets = _download_targets(abstract, storage, actor_id=actor.audit_id)
    if not targets:
        raise NotFound("No file attached to this abstract", code="NO_FILE_ATTACHED")

    files = [{"name": name, "url": storage.presigned_url(key)} for name, key in targets]
    submission_log.info("download abstract_id=%s files=%s", abstract.id, len(files))

    if len(files) == 1 and request.args.get("format") != "json":
        return redirect(files[0]["url"], code=302)
    return jsonify({"success": True, "files": files, "expires_in": storage.signed_url_expires}), 200


@api_bp.route('/abstracts/export-excel', methods=['GET'])
@jwt_required()
@require_roles(Role.ADMIN.value)
def export_abstracts_excel():
    """Download the master sheet for the (optionally filtered) abstracts."""
    actor, context = _resolve_actor_context("export_abstracts_excel")
    status = _status_filter()
    category = (request.args.get("category") or "").strip() or None
    abstracts = abstract_utils.list_abstracts(
        status=status,
        category=category,
        actor_id=actor.audit_id,
        context=context,
    )

    buffer = workbook_bytes(create_abstracts_excel(abstracts))
    filename = f"abstracts_master_{uuid.uuid4().hex[:8]}.xlsx"

    log_audit_event(
        event_type="abstract.excel.export.success",
        user_id=actor.audit_id,
        details={"count": len(abstracts), "status": status, "category": category, "filename": filename},
    )
    return send_file(
        buffer,
        as_attachment=True,
        download_name=filename,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
