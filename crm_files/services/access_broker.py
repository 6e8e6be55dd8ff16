"""Short-lived upload and view credentials for stored files."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session

from crm_files.config import settings
from crm_files.metrics import observe_file_operation
from crm_files.services.common import require_text
from crm_files.services.errors import StorageError, UploadPendingError, ValidationError
from crm_files.services.object_storage import (
    ObjectStorageError,
    StorageGateway,
    get_s3_storage,
)
from crm_files.services.queries import get_active_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadHandle:
    upload_url: str
    token: str
    storage_key: str
    expires_in_seconds: int


@dataclass(frozen=True)
class ViewHandle:
    view_url: str
    mime_type: str
    filename: str
    expires_in_seconds: int


def build_locator(tenant_id: uuid.UUID, file_id: uuid.UUID, filename: str) -> str:
    name = Path(require_text(filename, "Filename")).name
    if not name or name in {".", ".."}:
        raise ValidationError("Filename must name a file")
    return f"{tenant_id}/{file_id}/{name}"


class AccessBroker:
    """Mints storage credentials after re-checking tenant ownership."""

    def __init__(
        self,
        storage: StorageGateway | None = None,
        view_ttl_seconds: int | None = None,
        verify_object_on_view: bool | None = None,
    ) -> None:
        self.storage = storage
        self.view_ttl_seconds = view_ttl_seconds or settings.view_url_ttl_seconds
        self.verify_object_on_view = (
            settings.verify_object_on_view
            if verify_object_on_view is None
            else verify_object_on_view
        )

    def _storage_client(self) -> StorageGateway:
        if self.storage is None:
            self.storage = get_s3_storage()
        return self.storage

    def issue_upload_handle(
        self, db: Session, tenant_id: uuid.UUID, file_id, filename: str
    ) -> UploadHandle:
        file = get_active_file(db, tenant_id, file_id)
        locator = build_locator(tenant_id, file.id, filename)
        try:
            credential = self._storage_client().issue_upload_credential(
                locator, file.mime_type
            )
        except ObjectStorageError as exc:
            logger.error("upload_handle_failed file_id=%s key=%s", file.id, locator)
            observe_file_operation("issue_upload_handle", "storage_error")
            raise StorageError("Failed to generate upload URL") from exc

        file.storage_key = locator
        db.add(file)
        db.commit()
        logger.info("upload_handle_issued file_id=%s key=%s", file.id, locator)
        return UploadHandle(
            upload_url=credential.url,
            token=credential.token,
            storage_key=locator,
            expires_in_seconds=credential.expires_in,
        )

    def issue_view_handle(self, db: Session, tenant_id: uuid.UUID, file_id) -> ViewHandle:
        file = get_active_file(db, tenant_id, file_id)
        if not file.storage_key:
            raise UploadPendingError()
        storage = self._storage_client()
        try:
            if self.verify_object_on_view and not storage.exists(file.storage_key):
                logger.info("view_handle_pending file_id=%s key=%s", file.id, file.storage_key)
                raise UploadPendingError()
            url = storage.issue_download_credential(file.storage_key, self.view_ttl_seconds)
        except ObjectStorageError as exc:
            observe_file_operation("issue_view_handle", "storage_error")
            raise StorageError("Failed to generate view URL") from exc
        observe_file_operation("issue_view_handle", "success")
        return ViewHandle(
            view_url=url,
            mime_type=file.mime_type,
            filename=file.original_filename,
            expires_in_seconds=self.view_ttl_seconds,
        )


access_broker = AccessBroker()
