"""Files API: registration, revisions, links and related-file queries."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crm_files.api.deps import get_current_actor, get_db
from crm_files.schemas.files import (
    EntityFileList,
    EntityFileRead,
    FileCreate,
    FileDeleteRead,
    FileLinkCreate,
    FileLinkRead,
    FileRead,
    FileUpdate,
    FileUpdateRead,
    FileUploadRead,
    FileVersionList,
    FileVersionRead,
    LinkSourceRead,
    NewVersionCreate,
    NewVersionRead,
    RelatedFileList,
    RelatedFileRead,
    UploaderRead,
    ViewUrlRead,
)
from crm_files.services.access_broker import access_broker
from crm_files.services.file_registry import file_registry
from crm_files.services.identity import ActorContext
from crm_files.services.link_resolver import link_resolver

router = APIRouter(prefix="/files", tags=["files"])


def _uploader(item) -> UploaderRead:
    return UploaderRead(id=item.uploaded_by.id, full_name=item.uploaded_by.full_name)


@router.post("", response_model=FileUploadRead)
def create_file(
    payload: FileCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    created = file_registry.create_file(
        db,
        actor,
        title=payload.title,
        filename=payload.original_filename,
        doc_type=payload.doc_type,
        mime_type=payload.mime_type,
        size_bytes=payload.size_bytes,
    )
    return FileUploadRead(
        file_id=created.file.id,
        upload_url=created.handle.upload_url,
        token=created.handle.token,
        storage_key=created.handle.storage_key,
    )


@router.get("", response_model=EntityFileList)
def list_entity_files(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    items = link_resolver.list_links_for_entity(db, actor.tenant_id, entity_type, entity_id)
    return EntityFileList(
        files=[
            EntityFileRead(
                **FileRead.model_validate(item.file).model_dump(),
                uploaded_by=_uploader(item),
                versions=[FileVersionRead.model_validate(v) for v in item.versions],
            )
            for item in items
        ]
    )


@router.get("/related", response_model=RelatedFileList)
def list_related_files(
    company_id: str | None = Query(default=None),
    contact_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    items = link_resolver.resolve_related_files(
        db, actor.tenant_id, company_id=company_id, contact_id=contact_id
    )
    return RelatedFileList(
        files=[
            RelatedFileRead(
                **FileRead.model_validate(item.file).model_dump(),
                uploaded_by=_uploader(item),
                linked_to=[
                    LinkSourceRead(
                        entity_type=source.entity_type,
                        entity_id=source.entity_id,
                        entity_name=source.entity_name,
                    )
                    for source in item.linked_to
                ],
            )
            for item in items
        ]
    )


@router.post("/link", response_model=FileLinkRead, status_code=status.HTTP_201_CREATED)
def create_file_link(
    payload: FileLinkCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    return link_resolver.create_link(
        db, actor, payload.file_id, payload.entity_type, payload.entity_id
    )


@router.post("/{file_id}/new-version", response_model=NewVersionRead)
def create_file_version(
    file_id: str,
    payload: NewVersionCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    created = file_registry.create_new_version(
        db,
        actor,
        file_id,
        filename=payload.original_filename,
        mime_type=payload.mime_type,
        size_bytes=payload.size_bytes,
    )
    return NewVersionRead(
        new_file_id=created.file.id,
        version_number=created.file.version_number,
        parent_file_id=created.root_file_id,
        upload_url=created.handle.upload_url,
        token=created.handle.token,
        storage_key=created.handle.storage_key,
    )


@router.get("/{file_id}/versions", response_model=FileVersionList)
def list_file_versions(
    file_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    versions = file_registry.list_versions(db, actor.tenant_id, file_id)
    return FileVersionList(versions=[FileRead.model_validate(v) for v in versions])


@router.get("/{file_id}/view-url", response_model=ViewUrlRead)
def get_view_url(
    file_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    handle = access_broker.issue_view_handle(db, actor.tenant_id, file_id)
    return ViewUrlRead(
        view_url=handle.view_url,
        mime_type=handle.mime_type,
        filename=handle.filename,
        expires_in_seconds=handle.expires_in_seconds,
    )


@router.patch("/{file_id}", response_model=FileUpdateRead)
def update_file(
    file_id: str,
    payload: FileUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    return file_registry.update_metadata(
        db, actor.tenant_id, file_id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{file_id}", response_model=FileDeleteRead)
def delete_file(
    file_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    return file_registry.soft_delete(db, actor, file_id)
