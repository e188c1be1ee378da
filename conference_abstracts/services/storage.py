from __future__ import annotations

import os
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from flask import Flask, current_app
from werkzeug.utils import secure_filename

from conference_abstracts.errors import DependencyFailure, ValidationError
from conference_abstracts.utils.logging_utils import get_logger

storage_log = get_logger("storage")

EXTENSION_KEY = "abstract_storage"


@dataclass(frozen=True)
class StoredObject:
    key: str
    path: str
    file_name: str
    original_name: str
    size: int
    content_type: str
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalName": self.original_name,
            "fileName": self.file_name,
            "size": self.size,
            "type": self.content_type,
            "path": self.path,
            "key": self.key,
            "uploadedAt": self.uploaded_at.isoformat(),
        }


def safe_object_name(original_name: str) -> str:
    """``<millis>_<uuid8>_<sanitized stem><ext>``; unique even for identical uploads."""
    stem, ext = os.path.splitext(original_name or "")
    clean_stem = secure_filename(stem) or "file"
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{clean_stem}{ext.lower()}"


def new_submission_id(owner_id: Optional[int] = None) -> str:
    """
    Folder name for one upload batch. Batches uploaded for a user carry the
    owner (``u<id>-<hex>``) so later references can be checked against it.
    """
    token = uuid.uuid4().hex
    return token if owner_id is None else f"u{owner_id}-{token}"


def key_issued_to(key: Optional[str], owner_id: Optional[int]) -> bool:
    """True when ``key`` lies in an upload batch created for ``owner_id``."""
    if not key or owner_id is None:
        return False
    return re.fullmatch(rf"abstracts/u{int(owner_id)}-[0-9a-f]{{32}}/[^/]+", key) is not None


def validate_upload(original_name: str, content_type: Optional[str], size: int) -> str:
    """
    Check one file against the upload rules and return the effective
    content type. Raises ``ValidationError`` naming the file.
    """
    allowed: Dict[str, tuple] = current_app.config["ALLOWED_UPLOAD_TYPES"]
    max_bytes = current_app.config["UPLOAD_MAX_FILE_MB"] * 1024 * 1024
    ext = os.path.splitext(original_name or "")[1].lower()

    if not original_name or ext not in allowed:
        raise ValidationError(
            f"{original_name or 'file'}: unsupported file type (allowed: {', '.join(sorted(allowed))})",
            file=original_name,
        )
    mime = (content_type or "").split(";")[0].strip().lower() or allowed[ext][0]
    if mime not in allowed[ext]:
        raise ValidationError(f"{original_name}: content type {mime} does not match {ext}", file=original_name)
    if size <= 0:
        raise ValidationError(f"{original_name}: file is empty", file=original_name)
    if size > max_bytes:
        raise ValidationError(
            f"{original_name}: file exceeds {current_app.config['UPLOAD_MAX_FILE_MB']}MB limit",
            file=original_name,
        )
    return mime


class S3Storage:
    """S3-compatible object storage for abstract attachments."""

    def __init__(
        self,
        bucket: str,
        region: str,
        *,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        connect_timeout: int = 5,
        read_timeout: int = 5,
        max_attempts: int = 2,
        signed_url_expires: int = 600,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.signed_url_expires = signed_url_expires
        self._access_key = access_key
        self._secret_key = secret_key
        self._botocore_config = Config(
            signature_version="s3v4",
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        )
        self._client = client

    @classmethod
    def from_config(cls, config) -> "S3Storage":
        return cls(
            bucket=config["S3_BUCKET_NAME"],
            region=config["AWS_REGION"],
            endpoint_url=config.get("S3_ENDPOINT_URL"),
            access_key=config.get("AWS_ACCESS_KEY_ID"),
            secret_key=config.get("AWS_SECRET_ACCESS_KEY"),
            connect_timeout=config.get("S3_CONNECT_TIMEOUT", 5),
            read_timeout=config.get("S3_READ_TIMEOUT", 5),
            max_attempts=config.get("S3_MAX_ATTEMPTS", 2),
            signed_url_expires=config.get("SIGNED_URL_EXPIRES", 600),
        )

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
                region_name=self.region,
                config=self._botocore_config,
            )
        return self._client

    def object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload_bytes(self, data: bytes, original_name: str, content_type: str, submission_id: str) -> StoredObject:
        file_name = safe_object_name(original_name)
        key = f"abstracts/{submission_id}/{file_name}"
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            storage_log.error("upload failed key=%s err=%s", key, exc)
            raise DependencyFailure("S3 upload failed", dependency="storage", cause=exc) from exc

        storage_log.info("uploaded key=%s size=%s type=%s", key, len(data), content_type)
        return StoredObject(
            key=key,
            path=self.object_url(key),
            file_name=file_name,
            original_name=original_name,
            size=len(data),
            content_type=content_type,
        )

    def presigned_url(self, key: str, expires_in: Optional[int] = None) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or self.signed_url_expires,
            )
        except (ClientError, BotoCoreError) as exc:
            storage_log.error("presign failed key=%s err=%s", key, exc)
            raise DependencyFailure("S3 presign failed", dependency="storage", cause=exc) from exc

    def key_from_path(self, path: Optional[str]) -> Optional[str]:
        """Recover the object key from a stored public URL (legacy rows keep only the URL)."""
        if not path:
            return None
        parsed = urlparse(path)
        if not parsed.scheme:
            return path.lstrip("/") or None
        key = unquote(parsed.path.lstrip("/"))
        if parsed.netloc.startswith(f"{self.bucket}."):
            return key or None
        prefix = f"{self.bucket}/"
        if key.startswith(prefix):
            return key[len(prefix):] or None
        return key or None


def init_storage(app: Flask) -> S3Storage:
    storage = S3Storage.from_config(app.config)
    app.extensions[EXTENSION_KEY] = storage
    return storage


def get_storage() -> S3Storage:
    storage = current_app.extensions.get(EXTENSION_KEY)
    if storage is None:
        storage = init_storage(current_app._get_current_object())
    return storage
