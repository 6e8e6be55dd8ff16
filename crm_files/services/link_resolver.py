"""File-to-record links and related-file resolution.

Resolution is one hop deep: a company reaches the files of its deals, and a
contact reaches the files of the deals that belong to the contact's company.
Nothing is cached between calls.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crm_files.models.file import EntityType, File, FileLink
from crm_files.services.common import coerce_uuid, validate_enum
from crm_files.services.directory import (
    DealRef,
    EntityDirectory,
    UserDirectory,
    display_name,
    entities as default_entities,
    users as default_users,
)
from crm_files.services.errors import ConflictError, NotFoundError, ValidationError
from crm_files.services.file_registry import FileRegistry, file_registry
from crm_files.services.identity import ActorContext
from crm_files.services.queries import get_active_file, tenant_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploaderRef:
    id: uuid.UUID
    full_name: str


@dataclass(frozen=True)
class LinkSource:
    """One relationship path through which a file was reached."""

    entity_type: str
    entity_id: uuid.UUID
    entity_name: str | None = None


@dataclass
class RelatedFile:
    file: File
    uploaded_by: UploaderRef
    linked_to: list[LinkSource] = field(default_factory=list)


@dataclass
class LinkedFile:
    file: File
    uploaded_by: UploaderRef
    versions: list[File] = field(default_factory=list)


def _parse_query_id(value, label: str) -> uuid.UUID:
    try:
        return coerce_uuid(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {label}") from exc


class _Provenance:
    def __init__(self) -> None:
        self.sources: dict[uuid.UUID, list[LinkSource]] = {}
        self._seen: set[tuple[uuid.UUID, str, uuid.UUID]] = set()

    def add(self, file_id: uuid.UUID, source: LinkSource) -> None:
        key = (file_id, source.entity_type, source.entity_id)
        if key in self._seen:
            return
        self._seen.add(key)
        self.sources.setdefault(file_id, []).append(source)


class LinkResolver:
    def __init__(
        self,
        registry: FileRegistry | None = None,
        entities: EntityDirectory | None = None,
        users: UserDirectory | None = None,
    ) -> None:
        self.registry = registry or file_registry
        self.entities = entities or default_entities
        self.users = users or default_users

    def create_link(
        self, db: Session, actor: ActorContext, file_id, entity_type, entity_id
    ) -> FileLink:
        if not file_id or not entity_type or not entity_id:
            raise ValidationError("Missing required fields: file_id, entity_type, entity_id")
        entity_type = validate_enum(entity_type, EntityType, "entity_type")

        file = get_active_file(db, actor.tenant_id, file_id)
        try:
            entity_uuid = coerce_uuid(entity_id)
        except (TypeError, ValueError) as exc:
            raise NotFoundError(f"{entity_type.value} not found") from exc
        if not self.entities.exists(db, actor.tenant_id, entity_type, entity_uuid):
            raise NotFoundError(f"{entity_type.value} not found")

        link = FileLink(
            org_id=actor.tenant_id,
            file_id=file.id,
            entity_type=entity_type,
            entity_id=entity_uuid,
            created_by_user_id=actor.actor_id,
        )
        db.add(link)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("File is already linked to this entity") from exc
        db.refresh(link)
        logger.info(
            "file_linked file_id=%s entity=%s entity_id=%s",
            file.id,
            entity_type.value,
            entity_uuid,
        )
        return link

    def _linked_file_ids(
        self, db: Session, tenant_id: uuid.UUID, entity_type: EntityType, entity_ids
    ) -> list[tuple[uuid.UUID, uuid.UUID]]:
        entity_ids = list(entity_ids)
        if not entity_ids:
            return []
        rows = (
            db.query(FileLink.file_id, FileLink.entity_id)
            .filter(FileLink.org_id == tenant_id)
            .filter(FileLink.entity_type == entity_type)
            .filter(FileLink.entity_id.in_(entity_ids))
            .all()
        )
        return [(row.file_id, row.entity_id) for row in rows]

    def _collect_direct(
        self,
        db: Session,
        tenant_id: uuid.UUID,
        entity_type: EntityType,
        entity_id: uuid.UUID,
        provenance: _Provenance,
    ) -> None:
        for file_id, _ in self._linked_file_ids(db, tenant_id, entity_type, [entity_id]):
            provenance.add(file_id, LinkSource(entity_type.value, entity_id))

    def _collect_company_deals(
        self,
        db: Session,
        tenant_id: uuid.UUID,
        company_id: uuid.UUID,
        provenance: _Provenance,
    ) -> None:
        deals: list[DealRef] = self.entities.list_deals_for_company(db, tenant_id, company_id)
        if not deals:
            return
        names = {deal.id: deal.name for deal in deals}
        for file_id, deal_id in self._linked_file_ids(
            db, tenant_id, EntityType.deal, names.keys()
        ):
            provenance.add(
                file_id,
                LinkSource(EntityType.deal.value, deal_id, entity_name=names.get(deal_id)),
            )

    def resolve_related_files(
        self,
        db: Session,
        tenant_id: uuid.UUID,
        company_id=None,
        contact_id=None,
    ) -> list[RelatedFile]:
        if not company_id and not contact_id:
            raise ValidationError("Provide company_id or contact_id")

        provenance = _Provenance()
        if company_id:
            company_uuid = _parse_query_id(company_id, "company_id")
            self._collect_direct(db, tenant_id, EntityType.company, company_uuid, provenance)
            self._collect_company_deals(db, tenant_id, company_uuid, provenance)
        if contact_id:
            contact_uuid = _parse_query_id(contact_id, "contact_id")
            self._collect_direct(db, tenant_id, EntityType.contact, contact_uuid, provenance)
            company_ref = self.entities.get_company_ref_for_contact(db, tenant_id, contact_uuid)
            if company_ref:
                self._collect_company_deals(db, tenant_id, company_ref, provenance)

        if not provenance.sources:
            return []

        files = (
            tenant_files(db, tenant_id)
            .filter(File.id.in_(list(provenance.sources)))
            .order_by(File.created_at.desc(), File.version_number.desc())
            .all()
        )
        names = self.users.get_display_names(db, {f.uploaded_by_user_id for f in files})
        return [
            RelatedFile(
                file=f,
                uploaded_by=UploaderRef(
                    id=f.uploaded_by_user_id,
                    full_name=display_name(names, f.uploaded_by_user_id),
                ),
                linked_to=provenance.sources[f.id],
            )
            for f in files
        ]

    def list_links_for_entity(
        self, db: Session, tenant_id: uuid.UUID, entity_type, entity_id
    ) -> list[LinkedFile]:
        if not entity_type or not entity_id:
            raise ValidationError("Missing required params: entity_type, entity_id")
        entity_type = validate_enum(entity_type, EntityType, "entity_type")
        entity_uuid = _parse_query_id(entity_id, "entity_id")

        files = (
            tenant_files(db, tenant_id)
            .join(FileLink, FileLink.file_id == File.id)
            .filter(FileLink.org_id == tenant_id)
            .filter(FileLink.entity_type == entity_type)
            .filter(FileLink.entity_id == entity_uuid)
            .order_by(File.created_at.desc(), File.version_number.desc())
            .all()
        )
        names = self.users.get_display_names(db, {f.uploaded_by_user_id for f in files})
        chains: dict[uuid.UUID, list[File]] = {}
        results = []
        for f in files:
            root_id = f.chain_root_id
            if root_id not in chains:
                chains[root_id] = self.registry.list_chain(db, tenant_id, root_id)
            results.append(
                LinkedFile(
                    file=f,
                    uploaded_by=UploaderRef(
                        id=f.uploaded_by_user_id,
                        full_name=display_name(names, f.uploaded_by_user_id),
                    ),
                    versions=chains[root_id],
                )
            )
        return results


link_resolver = LinkResolver()
