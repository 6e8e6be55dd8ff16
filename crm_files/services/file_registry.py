"""File registry: creation, revisions, metadata and soft delete.

A chain is one root row (version 1, no parent) plus every row whose
``parent_file_id`` is that root. Rows are never re-parented and version
numbers are never reused, including numbers held by soft-deleted rows.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crm_files.config import settings
from crm_files.metrics import observe_file_operation
from crm_files.models.file import DocType, File, FileLink
from crm_files.services.access_broker import AccessBroker, UploadHandle, access_broker
from crm_files.services.common import require_text, validate_enum
from crm_files.services.errors import (
    ConflictError,
    PermissionDeniedError,
    ValidationError,
)
from crm_files.services.identity import ActorContext
from crm_files.services.queries import chain_filter, get_active_file, tenant_files
from crm_files.services.saga import UploadSaga

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 255


@dataclass(frozen=True)
class FileUpload:
    """A freshly created file row and the credential for its bytes."""

    file: File
    handle: UploadHandle

    @property
    def root_file_id(self) -> uuid.UUID:
        return self.file.chain_root_id


class FileRegistry:
    def __init__(
        self,
        broker: AccessBroker | None = None,
        max_file_size_bytes: int | None = None,
        bucket_name: str | None = None,
    ) -> None:
        self.broker = broker or access_broker
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes
        self.bucket_name = bucket_name or settings.s3_bucket_name

    def _validate_upload(self, filename, mime_type, size_bytes) -> tuple[str, str, int]:
        if (
            not filename
            or not mime_type
            or isinstance(size_bytes, bool)
            or not isinstance(size_bytes, int)
            or size_bytes <= 0
        ):
            raise ValidationError(
                "Missing required fields: original_filename, mime_type, size_bytes"
            )
        if size_bytes > self.max_file_size_bytes:
            max_mb = self.max_file_size_bytes / (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size is {max_mb:.0f}MB")
        return (
            require_text(filename, "Filename", MAX_TEXT_LENGTH),
            require_text(mime_type, "MIME type", MAX_TEXT_LENGTH),
            size_bytes,
        )

    def _delete_rows(self, db: Session, file_id: uuid.UUID) -> None:
        try:
            db.query(FileLink).filter(FileLink.file_id == file_id).delete(
                synchronize_session=False
            )
            db.query(File).filter(File.id == file_id).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise

    def create_file(
        self,
        db: Session,
        actor: ActorContext,
        *,
        title,
        filename,
        doc_type,
        mime_type,
        size_bytes,
    ) -> FileUpload:
        clean_title = require_text(title, "Title", MAX_TEXT_LENGTH)
        filename, mime_type, size_bytes = self._validate_upload(filename, mime_type, size_bytes)
        doc_type = validate_enum(doc_type, DocType, "doc_type")

        file_id = uuid.uuid4()
        file = File(
            id=file_id,
            org_id=actor.tenant_id,
            uploaded_by_user_id=actor.actor_id,
            title=clean_title,
            original_filename=filename,
            doc_type=doc_type,
            mime_type=mime_type,
            size_bytes=size_bytes,
            bucket_name=self.bucket_name,
            storage_key="",
            version_number=1,
            parent_file_id=None,
            root_file_id=file_id,
        )
        db.add(file)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

        saga = UploadSaga("create_file")
        saga.on_failure("file_row", lambda: self._delete_rows(db, file_id))
        try:
            handle = self.broker.issue_upload_handle(db, actor.tenant_id, file_id, filename)
        except Exception:
            db.rollback()
            saga.compensate()
            observe_file_operation("create_file", "failed")
            raise

        db.refresh(file)
        observe_file_operation("create_file", "success")
        logger.info(
            "file_created file_id=%s org=%s doc_type=%s size=%s",
            file.id,
            actor.tenant_id,
            doc_type.value,
            size_bytes,
        )
        return FileUpload(file=file, handle=handle)

    def next_version_number(self, db: Session, tenant_id: uuid.UUID, root_id: uuid.UUID) -> int:
        current = (
            db.query(func.max(File.version_number))
            .filter(File.org_id == tenant_id)
            .filter(chain_filter(root_id))
            .scalar()
        )
        return (current or 0) + 1

    def _copy_root_links(
        self, db: Session, actor: ActorContext, root_id: uuid.UUID, new_file_id: uuid.UUID
    ) -> int:
        root_links = (
            db.query(FileLink)
            .filter(FileLink.org_id == actor.tenant_id)
            .filter(FileLink.file_id == root_id)
            .all()
        )
        for link in root_links:
            db.add(
                FileLink(
                    org_id=actor.tenant_id,
                    file_id=new_file_id,
                    entity_type=link.entity_type,
                    entity_id=link.entity_id,
                    created_by_user_id=actor.actor_id,
                )
            )
        db.commit()
        return len(root_links)

    def create_new_version(
        self,
        db: Session,
        actor: ActorContext,
        file_id,
        *,
        filename,
        mime_type,
        size_bytes,
    ) -> FileUpload:
        original = get_active_file(db, actor.tenant_id, file_id)
        filename, mime_type, size_bytes = self._validate_upload(filename, mime_type, size_bytes)

        root_id = original.chain_root_id
        version_number = self.next_version_number(db, actor.tenant_id, root_id)
        new_id = uuid.uuid4()
        new_file = File(
            id=new_id,
            org_id=actor.tenant_id,
            uploaded_by_user_id=actor.actor_id,
            title=original.title,
            original_filename=filename,
            doc_type=original.doc_type,
            mime_type=mime_type,
            size_bytes=size_bytes,
            bucket_name=self.bucket_name,
            storage_key="",
            version_number=version_number,
            parent_file_id=root_id,
            root_file_id=root_id,
        )
        db.add(new_file)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            observe_file_operation("create_new_version", "conflict")
            logger.warning(
                "file_version_conflict root=%s version=%s", root_id, version_number
            )
            raise ConflictError(
                f"Version {version_number} was created concurrently; reload and retry",
                retryable=True,
            ) from exc

        saga = UploadSaga("create_new_version")
        saga.on_failure("file_row", lambda: self._delete_rows(db, new_id))
        try:
            handle = self.broker.issue_upload_handle(db, actor.tenant_id, new_id, filename)
            copied = self._copy_root_links(db, actor, root_id, new_id)
        except Exception:
            db.rollback()
            saga.compensate()
            observe_file_operation("create_new_version", "failed")
            raise

        db.refresh(new_file)
        observe_file_operation("create_new_version", "success")
        logger.info(
            "file_version_created file_id=%s root=%s version=%s links_copied=%s",
            new_id,
            root_id,
            version_number,
            copied,
        )
        return FileUpload(file=new_file, handle=handle)

    def update_metadata(self, db: Session, tenant_id: uuid.UUID, file_id, changes: dict) -> File:
        file = get_active_file(db, tenant_id, file_id)
        if not isinstance(changes, dict):
            raise ValidationError("No valid fields to update")

        update_data: dict = {}
        if "title" in changes:
            update_data["title"] = require_text(changes["title"], "Title", MAX_TEXT_LENGTH)
        if "doc_type" in changes:
            update_data["doc_type"] = validate_enum(changes["doc_type"], DocType, "doc_type")
        if not update_data:
            raise ValidationError("No valid fields to update")

        for key, value in update_data.items():
            setattr(file, key, value)
        file.updated_at = datetime.now(UTC)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(file)
        logger.info("file_updated file_id=%s fields=%s", file.id, ",".join(sorted(update_data)))
        return file

    def soft_delete(self, db: Session, actor: ActorContext, file_id) -> File:
        file = get_active_file(db, actor.tenant_id, file_id)
        if file.uploaded_by_user_id != actor.actor_id and not actor.is_admin:
            logger.warning(
                "file_delete_denied file_id=%s actor=%s", file.id, actor.actor_id
            )
            raise PermissionDeniedError("Only the uploader or an org admin can delete this file")

        file.is_deleted = True
        file.deleted_at = datetime.now(UTC)
        file.deleted_by_user_id = actor.actor_id
        db.commit()
        db.refresh(file)
        observe_file_operation("soft_delete", "success")
        logger.info("file_deleted file_id=%s actor=%s", file.id, actor.actor_id)
        return file

    def list_versions(self, db: Session, tenant_id: uuid.UUID, file_id) -> list[File]:
        file = get_active_file(db, tenant_id, file_id)
        return self.list_chain(db, tenant_id, file.chain_root_id)

    def list_chain(self, db: Session, tenant_id: uuid.UUID, root_id: uuid.UUID) -> list[File]:
        return (
            tenant_files(db, tenant_id)
            .filter(chain_filter(root_id))
            .order_by(File.version_number.asc())
            .all()
        )


file_registry = FileRegistry()

