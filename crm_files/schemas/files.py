"""Pydantic schemas for the files API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from crm_files.models.file import DocType, EntityType


class FileCreate(BaseModel):
    """Schema for registering a new document before its bytes are uploaded."""

    title: str = Field(..., max_length=255)
    original_filename: str = Field(..., max_length=255)
    doc_type: str = DocType.other.value
    mime_type: str = Field(..., max_length=255)
    size_bytes: int


class FileUploadRead(BaseModel):
    file_id: UUID
    upload_url: str
    token: str
    storage_key: str


class NewVersionCreate(BaseModel):
    original_filename: str = Field(..., max_length=255)
    mime_type: str = Field(..., max_length=255)
    size_bytes: int


class NewVersionRead(BaseModel):
    new_file_id: UUID
    version_number: int
    parent_file_id: UUID
    upload_url: str
    token: str
    storage_key: str


class FileUpdate(BaseModel):
    """Partial metadata update; only supplied fields are applied."""

    title: str | None = Field(default=None, max_length=255)
    doc_type: str | None = None


class FileUpdateRead(BaseModel):
    id: UUID
    title: str
    doc_type: DocType
    updated_at: datetime

    model_config = {"from_attributes": True}


class FileDeleteRead(BaseModel):
    id: UUID
    is_deleted: bool
    deleted_at: datetime | None

    model_config = {"from_attributes": True}


class ViewUrlRead(BaseModel):
    view_url: str
    mime_type: str
    filename: str
    expires_in_seconds: int


class FileLinkCreate(BaseModel):
    file_id: str
    entity_type: str
    entity_id: str


class FileLinkRead(BaseModel):
    id: UUID
    file_id: UUID
    entity_type: EntityType
    entity_id: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class UploaderRead(BaseModel):
    id: UUID
    full_name: str


class FileVersionRead(BaseModel):
    id: UUID
    version_number: int
    created_at: datetime
    title: str
    size_bytes: int

    model_config = {"from_attributes": True}


class FileRead(BaseModel):
    id: UUID
    title: str
    original_filename: str
    doc_type: DocType
    mime_type: str
    size_bytes: int
    version_number: int
    parent_file_id: UUID | None
    uploaded_by_user_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LinkSourceRead(BaseModel):
    entity_type: EntityType
    entity_id: UUID
    entity_name: str | None = None


class EntityFileRead(FileRead):
    uploaded_by: UploaderRead
    versions: list[FileVersionRead] = []


class RelatedFileRead(FileRead):
    uploaded_by: UploaderRead
    linked_to: list[LinkSourceRead] = []


class EntityFileList(BaseModel):
    files: list[EntityFileRead]


class RelatedFileList(BaseModel):
    files: list[RelatedFileRead]


class FileVersionList(BaseModel):
    versions: list[FileRead]
