"""create files and file links

Revision ID: 0001_files_and_links
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = "0001_files_and_links"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

doc_type_enum = sa.Enum(
    "contract", "receipt", "proposal", "invoice", "other", name="doctype"
)
entity_type_enum = sa.Enum("deal", "company", "contact", name="entitytype")
user_role_enum = sa.Enum("admin", "member", name="userrole")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        _timestamp("created_at"),
    )
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(200)),
        sa.Column("role", user_role_enum, nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"])

    op.create_table(
        "companies",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_companies_org_id", "companies", ["org_id"])
    op.create_table(
        "deals",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id")),
        sa.Column("name", sa.String(200), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_deals_org_id", "deals", ["org_id"])
    op.create_index("ix_deals_company_id", "deals", ["company_id"])
    op.create_table(
        "contacts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("company_id", UUID(as_uuid=True), sa.ForeignKey("companies.id")),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100)),
        _timestamp("created_at"),
    )
    op.create_index("ix_contacts_org_id", "contacts", ["org_id"])
    op.create_index("ix_contacts_company_id", "contacts", ["company_id"])

    op.create_table(
        "files",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("doc_type", doc_type_enum, nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False),
        sa.Column("bucket_name", sa.String(100), nullable=False),
        sa.Column("storage_key", sa.String(1024), nullable=False, server_default=""),
        sa.Column(
            "uploaded_by_user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("version_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("parent_file_id", UUID(as_uuid=True), sa.ForeignKey("files.id")),
        sa.Column("root_file_id", UUID(as_uuid=True), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        _timestamp("deleted_at"),
        sa.Column("deleted_by_user_id", UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.UniqueConstraint("root_file_id", "version_number", name="uq_files_chain_version"),
        sa.CheckConstraint("version_number >= 1", name="ck_files_version_positive"),
    )
    op.create_index("ix_files_org_active", "files", ["org_id", "is_deleted"])
    op.create_index("ix_files_parent_file_id", "files", ["parent_file_id"])
    op.create_index("ix_files_root_file_id", "files", ["root_file_id"])

    op.create_table(
        "file_links",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("org_id", UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("file_id", UUID(as_uuid=True), sa.ForeignKey("files.id"), nullable=False),
        sa.Column("entity_type", entity_type_enum, nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_by_user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "org_id", "file_id", "entity_type", "entity_id", name="uq_file_links_target"
        ),
    )
    op.create_index("ix_file_links_file_id", "file_links", ["file_id"])
    op.create_index(
        "ix_file_links_entity", "file_links", ["org_id", "entity_type", "entity_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_file_links_entity", table_name="file_links")
    op.drop_index("ix_file_links_file_id", table_name="file_links")
    op.drop_table("file_links")
    op.drop_index("ix_files_root_file_id", table_name="files")
    op.drop_index("ix_files_parent_file_id", table_name="files")
    op.drop_index("ix_files_org_active", table_name="files")
    op.drop_table("files")
    for table in ("contacts", "deals", "companies", "users"):
        op.drop_table(table)
    op.drop_table("organizations")
    bind = op.get_bind()
    for enum_type in (entity_type_enum, doc_type_enum, user_role_enum):
        enum_type.drop(bind, checkfirst=True)
