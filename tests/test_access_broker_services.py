import uuid

import pytest

from crm_files.services.access_broker import AccessBroker, access_broker, build_locator
from crm_files.services.errors import (
    NotFoundError,
    StorageError,
    UploadPendingError,
    ValidationError,
)
from crm_files.services.file_registry import file_registry
from tests.mocks import FakeStorage, as_actor


def _upload(db_session, actor):
    return file_registry.create_file(
        db_session,
        actor,
        title="Receipt",
        filename="receipt.png",
        doc_type="receipt",
        mime_type="image/png",
        size_bytes=512,
    )


def test_build_locator_scopes_by_tenant_and_file():
    tenant_id, file_id = uuid.uuid4(), uuid.uuid4()
    assert build_locator(tenant_id, file_id, "dir/scan.png") == f"{tenant_id}/{file_id}/scan.png"


def test_build_locator_rejects_empty_name():
    with pytest.raises(ValidationError):
        build_locator(uuid.uuid4(), uuid.uuid4(), "..")


def test_view_handle_for_uploaded_file(db_session, actor, storage):
    created = _upload(db_session, actor)
    storage.put(created.handle.storage_key)

    handle = access_broker.issue_view_handle(db_session, actor.tenant_id, created.file.id)

    assert handle.mime_type == "image/png"
    assert handle.filename == "receipt.png"
    assert handle.expires_in_seconds == access_broker.view_ttl_seconds
    assert storage.download_requests == [
        (created.handle.storage_key, access_broker.view_ttl_seconds)
    ]


def test_view_handle_before_upload_lands_is_pending(db_session, actor):
    created = _upload(db_session, actor)
    with pytest.raises(UploadPendingError) as exc_info:
        access_broker.issue_view_handle(db_session, actor.tenant_id, created.file.id)
    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 409


def test_view_handle_without_verification_skips_existence_check(db_session, actor):
    created = _upload(db_session, actor)
    broker = AccessBroker(storage=FakeStorage(), view_ttl_seconds=60, verify_object_on_view=False)

    handle = broker.issue_view_handle(db_session, actor.tenant_id, created.file.id)

    assert handle.expires_in_seconds == 60


def test_view_handle_for_foreign_tenant_is_not_found(db_session, actor, outsider, storage):
    created = _upload(db_session, actor)
    storage.put(created.handle.storage_key)
    with pytest.raises(NotFoundError):
        access_broker.issue_view_handle(db_session, outsider.org_id, created.file.id)
    assert storage.download_requests == []


def test_view_handle_for_deleted_file_is_not_found(db_session, actor, storage):
    created = _upload(db_session, actor)
    storage.put(created.handle.storage_key)
    file_registry.soft_delete(db_session, actor, created.file.id)
    with pytest.raises(NotFoundError):
        access_broker.issue_view_handle(db_session, actor.tenant_id, created.file.id)


def test_view_handle_storage_failure(db_session, actor, storage):
    created = _upload(db_session, actor)
    storage.put(created.handle.storage_key)
    storage.fail_downloads = True
    with pytest.raises(StorageError, match="Failed to generate view URL"):
        access_broker.issue_view_handle(db_session, actor.tenant_id, created.file.id)


def test_upload_handle_for_foreign_file_is_not_found(db_session, actor, outsider):
    created = _upload(db_session, actor)
    with pytest.raises(NotFoundError):
        access_broker.issue_upload_handle(
            db_session, as_actor(outsider).tenant_id, created.file.id, "x.png"
        )
