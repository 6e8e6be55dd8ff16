"""Tenant-scoped query helpers shared by the registry, resolver and broker."""

from __future__ import annotations

import uuid

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from crm_files.models.file import File
from crm_files.services.common import parse_id
from crm_files.services.errors import NotFoundError


def tenant_files(db: Session, tenant_id: uuid.UUID, include_deleted: bool = False) -> Query:
    query = db.query(File).filter(File.org_id == tenant_id)
    if not include_deleted:
        query = query.filter(File.is_deleted.is_(False))
    return query


def get_active_file(db: Session, tenant_id: uuid.UUID, file_id) -> File:
    """Return a live file of this tenant or raise NotFoundError.

    Foreign-tenant and soft-deleted rows are reported exactly like absent ones.
    """
    file_uuid = parse_id(file_id, "File")
    file = tenant_files(db, tenant_id).filter(File.id == file_uuid).first()
    if not file:
        raise NotFoundError("File not found")
    return file


def chain_filter(root_id: uuid.UUID):
    return or_(File.id == root_id, File.parent_file_id == root_id)
