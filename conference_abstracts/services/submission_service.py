"""
Submission intake: normalise, validate, store attachments, persist.

Raw files are pushed to object storage before anything touches the
database, so a storage outage rejects the whole submission. The abstract row
and its file rows are then written in one transaction, and the confirmation
email is queued only after that commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from flask import current_app

from conference_abstracts.errors import Forbidden, NotFound, Unauthorized, ValidationError
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.security_utils import Actor
from conference_abstracts.services import notification_service
from conference_abstracts.services.storage import get_storage, key_issued_to, new_submission_id, validate_upload
from conference_abstracts.services.transactions import atomic
from conference_abstracts.services.word_count import enforce_word_limit
from conference_abstracts.utils.logging_utils import get_logger, log_context
from conference_abstracts.utils.model_utils import abstract_utils, uploaded_file_utils
from conference_abstracts.utils.normalization import missing_required_fields, normalize_abstract_payload

submission_log = get_logger("submission")


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class FileRef:
    file_name: str
    file_path: str
    file_key: Optional[str]
    file_size: Optional[int]
    content_type: Optional[str]


def read_request_files(storages: Iterable[Any]) -> List[IncomingFile]:
    """Read werkzeug ``FileStorage`` objects, skipping empty form slots."""
    files: List[IncomingFile] = []
    for storage in storages:
        if storage is None or not storage.filename:
            continue
        files.append(IncomingFile(storage.filename, storage.mimetype or "", storage.read()))
    return files


def validate_files(files: Sequence[IncomingFile], already_attached: int = 0) -> List[IncomingFile]:
    max_files = current_app.config["UPLOAD_MAX_FILES"]
    if len(files) + already_attached > max_files:
        raise ValidationError(f"Maximum {max_files} files allowed", max_files=max_files)
    checked = []
    for f in files:
        content_type = validate_upload(f.filename, f.content_type, len(f.data))
        checked.append(IncomingFile(f.filename, content_type, f.data))
    return checked


def store_files(files: Sequence[IncomingFile], submission_id: str) -> List[FileRef]:
    storage = get_storage()
    refs = []
    for f in files:
        stored = storage.upload_bytes(f.data, f.filename, f.content_type, submission_id)
        refs.append(FileRef(stored.original_name, stored.path, stored.key, stored.size, stored.content_type))
    return refs


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _issued_key(key: Optional[str], path: Optional[str], owner_id: Optional[int]) -> str:
    storage = get_storage()
    key = key or storage.key_from_path(path)
    if not key_issued_to(key, owner_id):
        submission_log.warning("rejected file reference key=%r owner_id=%s", key, owner_id)
        raise Forbidden("File reference was not uploaded by you", key=key)
    return key


def referenced_files(payload: Mapping[str, Any], owner_id: Optional[int]) -> List[FileRef]:
    """
    File references from an earlier ``/api/upload`` call or the legacy
    single-file fields. Only objects uploaded for ``owner_id`` are accepted,
    and the stored URL is rebuilt from the key.
    """
    raw = payload.get("uploaded_files") or payload.get("uploadedFiles") or []
    if not isinstance(raw, list):
        raise ValidationError("uploaded_files must be a list")
    storage = get_storage()
    refs: List[FileRef] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise ValidationError("uploaded_files entries must be objects")
        path = item.get("path") or item.get("file_path")
        key = item.get("key") or item.get("file_key")
        if not (path or key):
            raise ValidationError("uploaded_files entries need a key or path")
        key = _issued_key(key, path, owner_id)
        refs.append(FileRef(
            file_name=item.get("originalName") or item.get("file_name") or item.get("fileName") or key.rsplit("/", 1)[-1],
            file_path=storage.object_url(key),
            file_key=key,
            file_size=_int_or_none(item.get("size") or item.get("file_size")),
            content_type=item.get("type") or item.get("content_type"),
        ))

    legacy_path = payload.get("file_path") or payload.get("filePath")
    if not refs and legacy_path:
        key = _issued_key(None, legacy_path, owner_id)
        refs.append(FileRef(
            file_name=payload.get("file_name") or payload.get("fileName") or key.rsplit("/", 1)[-1],
            file_path=storage.object_url(key),
            file_key=key,
            file_size=_int_or_none(payload.get("file_size") or payload.get("fileSize")),
            content_type=None,
        ))
    return refs


def validate_abstract_fields(data: Dict[str, Any]) -> int:
    """
    Required fields first (all named at once), then the word limit. A body
    with no words is a missing field, not a word-limit failure.
    """
    missing = missing_required_fields(data)
    if missing:
        raise ValidationError("Missing required fields", missing_fields=missing)
    return enforce_word_limit(data["abstract_content"], data["presentation_type"], data["category"])


def _attach(abstract: Abstracts, refs: Sequence[FileRef], actor_id: Optional[str]) -> None:
    for ref in refs:
        uploaded_file_utils.save_uploaded_file(
            actor_id=actor_id,
            abstract=abstract,
            file_name=ref.file_name,
            file_path=ref.file_path,
            file_key=ref.file_key,
            file_size=ref.file_size,
            content_type=ref.content_type,
        )
    if refs and not (abstract.file_name and abstract.file_path):
        first = refs[0]
        abstract.file_name = first.file_name
        abstract.file_path = first.file_path
        abstract.file_size = first.file_size


def submit_abstract(
    payload: Mapping[str, Any],
    actor: Optional[Actor],
    files: Sequence[IncomingFile] = (),
) -> Abstracts:
    if actor is None:
        raise Unauthorized("Authentication required")

    data = normalize_abstract_payload(payload)
    with log_context(action="submit_abstract", actor_id=actor.audit_id):
        words = validate_abstract_fields(data)
        refs = referenced_files(payload, actor.user_id)
        incoming = validate_files(files, already_attached=len(refs))

        if incoming:
            refs = refs + store_files(incoming, new_submission_id(actor.user_id))

        with atomic("submit abstract"):
            abstract = abstract_utils.create_abstract(
                commit=False,
                actor_id=actor.audit_id,
                user_id=actor.user_id,
                **data,
            )
            _attach(abstract, refs, actor.audit_id)

        submission_log.info(
            "abstract submitted id=%s number=%s words=%s files=%s bucket=%s",
            abstract.id,
            abstract.abstract_number,
            words,
            len(refs),
            abstract.bucket,
        )

    notification_service.notify_submission(abstract)
    return abstract


def load_visible_abstract(abstract_id: Any, actor: Optional[Actor]) -> Abstracts:
    """Fetch an abstract the caller may see: admins see all, users their own."""
    if actor is None:
        raise Unauthorized("Authentication required")
    abstract = abstract_utils.get_abstract_by_id(abstract_id, actor_id=actor.audit_id)
    if abstract is None:
        raise NotFound("Abstract not found")
    if not actor.is_admin and not actor.owns(abstract):
        raise Forbidden("You can only access your own abstracts")
    return abstract


def attach_files(abstract_id: Any, files: Sequence[IncomingFile], actor: Optional[Actor]) -> Abstracts:
    """Re-upload: add files to an existing abstract (owner while pending, or admin)."""
    abstract = load_visible_abstract(abstract_id, actor)
    if not actor.is_admin and not abstract.is_pending:
        raise Forbidden("Files can only be changed while the abstract is pending")
    if not files:
        raise ValidationError("No files provided")

    incoming = validate_files(files, already_attached=len(abstract.files))
    refs = store_files(incoming, new_submission_id(abstract.user_id))
    with atomic("attach files"):
        _attach(abstract, refs, actor.audit_id)
        abstract.touch()
    submission_log.info("files attached abstract_id=%s count=%s", abstract.id, len(refs))
    return abstract
