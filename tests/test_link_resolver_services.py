import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from crm_files.models.crm import Company, Contact, Deal
from crm_files.models.file import EntityType
from crm_files.models.identity import User
from crm_files.services.directory import entities
from crm_files.services.errors import ConflictError, NotFoundError, ValidationError
from crm_files.services.file_registry import file_registry
from crm_files.services.link_resolver import LinkResolver, link_resolver
from tests.mocks import as_actor


def _upload(db_session, actor, title="Proposal", version_of=None):
    if version_of is not None:
        return file_registry.create_new_version(
            db_session,
            actor,
            version_of,
            filename="proposal-rev.pdf",
            mime_type="application/pdf",
            size_bytes=1024,
        ).file
    return file_registry.create_file(
        db_session,
        actor,
        title=title,
        filename="proposal.pdf",
        doc_type="proposal",
        mime_type="application/pdf",
        size_bytes=1024,
    ).file


def _set_created_at(db_session, file, value):
    file.created_at = value
    db_session.commit()


def test_create_link_returns_link(db_session, actor, deal):
    file = _upload(db_session, actor)
    link = link_resolver.create_link(db_session, actor, str(file.id), "deal", str(deal.id))
    assert link.file_id == file.id
    assert link.entity_type == EntityType.deal
    assert link.entity_id == deal.id
    assert link.created_by_user_id == actor.actor_id


def test_create_link_rejects_duplicate(db_session, actor, deal):
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)
    with pytest.raises(ConflictError, match="already linked"):
        link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)


def test_create_link_rejects_unknown_entity_type_before_any_lookup(actor):
    db = MagicMock()
    with pytest.raises(ValidationError, match="Invalid entity_type"):
        link_resolver.create_link(db, actor, uuid.uuid4(), "other", uuid.uuid4())
    db.query.assert_not_called()


def test_create_link_requires_all_fields(db_session, actor):
    with pytest.raises(ValidationError, match="Missing required fields"):
        link_resolver.create_link(db_session, actor, None, "deal", uuid.uuid4())


def test_create_link_to_foreign_entity_is_not_found(db_session, actor, other_org):
    file = _upload(db_session, actor)
    foreign_deal = Deal(org_id=other_org.id, name="Elsewhere")
    db_session.add(foreign_deal)
    db_session.commit()
    with pytest.raises(NotFoundError, match="deal not found"):
        link_resolver.create_link(db_session, actor, file.id, "deal", foreign_deal.id)


def test_create_link_to_missing_entity_is_not_found(db_session, actor):
    file = _upload(db_session, actor)
    with pytest.raises(NotFoundError, match="contact not found"):
        link_resolver.create_link(db_session, actor, file.id, "contact", uuid.uuid4())


def test_create_link_for_foreign_file_is_not_found(db_session, actor, outsider, other_org):
    file = _upload(db_session, actor)
    their_company = Company(org_id=other_org.id, name="Globex")
    db_session.add(their_company)
    db_session.commit()
    with pytest.raises(NotFoundError, match="File not found"):
        link_resolver.create_link(
            db_session, as_actor(outsider), file.id, "company", their_company.id
        )


def test_related_files_for_company_include_deal_files(db_session, actor, org, company, deal):
    other_deal = Deal(org_id=org.id, company_id=None, name="Unrelated")
    db_session.add(other_deal)
    db_session.commit()
    direct = _upload(db_session, actor, title="Company NDA")
    via_deal = _upload(db_session, actor, title="Renewal quote")
    unrelated = _upload(db_session, actor, title="Other quote")
    link_resolver.create_link(db_session, actor, direct.id, "company", company.id)
    link_resolver.create_link(db_session, actor, via_deal.id, "deal", deal.id)
    link_resolver.create_link(db_session, actor, unrelated.id, "deal", other_deal.id)

    results = link_resolver.resolve_related_files(db_session, org.id, company_id=company.id)

    by_id = {item.file.id: item for item in results}
    assert set(by_id) == {direct.id, via_deal.id}
    deal_source = by_id[via_deal.id].linked_to[0]
    assert deal_source.entity_type == "deal"
    assert deal_source.entity_id == deal.id
    assert deal_source.entity_name == "Initech renewal"
    assert by_id[direct.id].linked_to[0].entity_type == "company"


def test_related_files_for_contact_reach_company_deals(
    db_session, actor, org, contact, deal
):
    via_contact = _upload(db_session, actor, title="Call notes")
    via_deal = _upload(db_session, actor, title="Renewal quote")
    link_resolver.create_link(db_session, actor, via_contact.id, "contact", contact.id)
    link_resolver.create_link(db_session, actor, via_deal.id, "deal", deal.id)

    results = link_resolver.resolve_related_files(db_session, org.id, contact_id=contact.id)

    assert {item.file.id for item in results} == {via_contact.id, via_deal.id}


def test_related_files_for_contact_without_company(db_session, actor, org, deal):
    loner = Contact(org_id=org.id, company_id=None, first_name="Milton", last_name="Waddams")
    db_session.add(loner)
    db_session.commit()
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)

    assert link_resolver.resolve_related_files(db_session, org.id, contact_id=loner.id) == []


def test_related_files_dedupe_but_keep_every_path(db_session, actor, org, company, deal):
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "company", company.id)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)

    results = link_resolver.resolve_related_files(db_session, org.id, company_id=company.id)

    assert len(results) == 1
    assert {(s.entity_type, s.entity_id) for s in results[0].linked_to} == {
        ("company", company.id),
        ("deal", deal.id),
    }


def test_related_files_report_a_shared_path_once(
    db_session, actor, org, company, contact, deal
):
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)

    results = link_resolver.resolve_related_files(
        db_session, org.id, company_id=company.id, contact_id=contact.id
    )

    assert len(results) == 1
    assert len(results[0].linked_to) == 1


def test_related_files_skip_deleted_and_foreign_rows(
    db_session, actor, org, company, deal, outsider
):
    kept = _upload(db_session, actor, title="Kept")
    removed = _upload(db_session, actor, title="Removed")
    link_resolver.create_link(db_session, actor, kept.id, "deal", deal.id)
    link_resolver.create_link(db_session, actor, removed.id, "deal", deal.id)
    file_registry.soft_delete(db_session, actor, removed.id)

    results = link_resolver.resolve_related_files(db_session, org.id, company_id=company.id)
    assert [item.file.id for item in results] == [kept.id]

    assert (
        link_resolver.resolve_related_files(db_session, outsider.org_id, company_id=company.id)
        == []
    )


def test_related_files_order_newest_first(db_session, actor, org, company):
    older = _upload(db_session, actor, title="Older")
    newer = _upload(db_session, actor, title="Newer")
    now = datetime.now(UTC)
    _set_created_at(db_session, older, now - timedelta(days=2))
    _set_created_at(db_session, newer, now - timedelta(days=1))
    for file in (older, newer):
        link_resolver.create_link(db_session, actor, file.id, "company", company.id)

    results = link_resolver.resolve_related_files(db_session, org.id, company_id=company.id)

    assert [item.file.title for item in results] == ["Newer", "Older"]


def test_related_files_fall_back_to_unknown_uploader(db_session, org, company):
    nameless = User(org_id=org.id, email=f"{uuid.uuid4().hex}@example.com", full_name=None)
    db_session.add(nameless)
    db_session.commit()
    actor = as_actor(nameless)
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "company", company.id)

    results = link_resolver.resolve_related_files(db_session, org.id, company_id=company.id)

    assert results[0].uploaded_by.id == nameless.id
    assert results[0].uploaded_by.full_name == "Unknown"


def test_related_files_require_a_target(db_session, org):
    with pytest.raises(ValidationError, match="Provide company_id or contact_id"):
        link_resolver.resolve_related_files(db_session, org.id)


def test_related_files_reject_malformed_query_id(db_session, org):
    with pytest.raises(ValidationError, match="Invalid company_id"):
        link_resolver.resolve_related_files(db_session, org.id, company_id="abc")


def test_related_files_use_injected_directories(db_session, actor, org, deal):
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)
    users = MagicMock()
    users.get_display_names.return_value = {actor.actor_id: "Directory Name"}
    resolver = LinkResolver(users=users)

    results = resolver.resolve_related_files(db_session, org.id, company_id=deal.company_id)

    assert results[0].uploaded_by.full_name == "Directory Name"
    users.get_display_names.assert_called_once()


def test_list_links_for_entity_returns_files_with_versions(db_session, actor, org, deal):
    root = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, root.id, "deal", deal.id)
    revision = _upload(db_session, actor, version_of=root.id)

    results = link_resolver.list_links_for_entity(db_session, org.id, "deal", str(deal.id))

    assert {item.file.id for item in results} == {root.id, revision.id}
    for item in results:
        assert [v.version_number for v in item.versions] == [1, 2]
        assert item.uploaded_by.full_name == "Mia Member"


def test_list_links_for_entity_skips_deleted_files(db_session, actor, org, deal):
    file = _upload(db_session, actor)
    link_resolver.create_link(db_session, actor, file.id, "deal", deal.id)
    file_registry.soft_delete(db_session, actor, file.id)

    assert link_resolver.list_links_for_entity(db_session, org.id, "deal", deal.id) == []


def test_list_links_for_entity_validates_params(db_session, org):
    with pytest.raises(ValidationError, match="Missing required params"):
        link_resolver.list_links_for_entity(db_session, org.id, "deal", None)
    with pytest.raises(ValidationError, match="Invalid entity_type"):
        link_resolver.list_links_for_entity(db_session, org.id, "invoice", uuid.uuid4())


def test_entity_directory_scopes_company_refs_by_tenant(db_session, org, other_org, deal, contact):
    assert entities.get_company_ref_for_deal(db_session, org.id, deal.id) == deal.company_id
    assert entities.get_company_ref_for_contact(db_session, org.id, contact.id) == contact.company_id
    assert entities.get_company_ref_for_deal(db_session, other_org.id, deal.id) is None
