from __future__ import annotations

from typing import Dict, Optional, Sequence

from sqlalchemy import or_

from conference_abstracts.models.Abstract import UploadedFile

from .base import create_instance, list_instances


def get_files_by_abstract_id(abstract_id: int, *, actor_id: Optional[str] = None) -> Sequence[UploadedFile]:
    return list_instances(
        UploadedFile,
        filters=[UploadedFile.abstract_id == abstract_id],
        order_by=UploadedFile.id,
        actor_id=actor_id,
        context={"function": "get_files_by_abstract_id", "abstract_id": abstract_id},
    )


def save_uploaded_file(
    commit: bool = False,
    *,
    actor_id: Optional[str] = None,
    context: Optional[Dict[str, object]] = None,
    **attributes,
) -> UploadedFile:
    """Add a file reference; by default it joins the caller's transaction."""
    return create_instance(
        UploadedFile,
        commit=commit,
        actor_id=actor_id,
        event_name="uploaded_file.create",
        context={"function": "save_uploaded_file", **(context or {})},
        **attributes,
    )


def find_files_by_key_or_path(key: str, path: Optional[str] = None) -> Sequence[UploadedFile]:
    """Rows that reference an object key, either directly or through its stored URL."""
    clauses = [UploadedFile.file_key == key]
    if path:
        clauses.append(UploadedFile.file_path == path)
    return list_instances(
        UploadedFile,
        filters=[or_(*clauses)],
        context={"function": "find_files_by_key_or_path"},
    )
