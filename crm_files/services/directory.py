"""Lookups into CRM records and users owned by adjacent subsystems."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from crm_files.models.crm import Company, Contact, Deal
from crm_files.models.file import EntityType
from crm_files.models.identity import User

UNKNOWN_USER = "Unknown"

_ENTITY_MODELS = {
    EntityType.deal: Deal,
    EntityType.company: Company,
    EntityType.contact: Contact,
}


@dataclass(frozen=True)
class DealRef:
    id: uuid.UUID
    name: str | None


class EntityDirectory(Protocol):
    def exists(
        self, db: Session, tenant_id: uuid.UUID, entity_type: EntityType, entity_id: uuid.UUID
    ) -> bool: ...
    def get_company_ref_for_deal(
        self, db: Session, tenant_id: uuid.UUID, deal_id: uuid.UUID
    ) -> uuid.UUID | None: ...
    def get_company_ref_for_contact(
        self, db: Session, tenant_id: uuid.UUID, contact_id: uuid.UUID
    ) -> uuid.UUID | None: ...
    def list_deals_for_company(
        self, db: Session, tenant_id: uuid.UUID, company_id: uuid.UUID
    ) -> list[DealRef]: ...


class UserDirectory(Protocol):
    def get_display_names(self, db: Session, user_ids: Iterable[uuid.UUID]) -> dict: ...


class SqlEntityDirectory:
    """Entity lookups scoped to one tenant."""

    def exists(self, db, tenant_id, entity_type, entity_id) -> bool:
        model = _ENTITY_MODELS[entity_type]
        return (
            db.query(model.id)
            .filter(model.id == entity_id)
            .filter(model.org_id == tenant_id)
            .first()
            is not None
        )

    def get_company_ref_for_deal(self, db, tenant_id, deal_id):
        row = (
            db.query(Deal.company_id)
            .filter(Deal.id == deal_id)
            .filter(Deal.org_id == tenant_id)
            .first()
        )
        return row.company_id if row else None

    def get_company_ref_for_contact(self, db, tenant_id, contact_id):
        row = (
            db.query(Contact.company_id)
            .filter(Contact.id == contact_id)
            .filter(Contact.org_id == tenant_id)
            .first()
        )
        return row.company_id if row else None

    def list_deals_for_company(self, db, tenant_id, company_id) -> list[DealRef]:
        rows = (
            db.query(Deal.id, Deal.name)
            .filter(Deal.company_id == company_id)
            .filter(Deal.org_id == tenant_id)
            .all()
        )
        return [DealRef(id=row.id, name=row.name) for row in rows]


class SqlUserDirectory:
    def get_display_names(self, db: Session, user_ids: Iterable[uuid.UUID]) -> dict:
        ids = {user_id for user_id in user_ids if user_id is not None}
        if not ids:
            return {}
        rows = db.query(User.id, User.full_name).filter(User.id.in_(ids)).all()
        return {row.id: row.full_name for row in rows if row.full_name}


def display_name(names: dict, user_id) -> str:
    return names.get(user_id) or UNKNOWN_USER


entities = SqlEntityDirectory()
users = SqlUserDirectory()
