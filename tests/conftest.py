import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import sqltypes

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


# Store UUIDs as strings on SQLite and accept str ids in filters.
# This must happen before any models are imported.
setattr(sqltypes.Uuid, "bind_processor", _sqlite_uuid_bind_processor)
setattr(sqltypes.Uuid, "result_processor", _sqlite_uuid_result_processor)

from crm_files.db import Base  # noqa: E402
from crm_files.models.crm import Company, Contact, Deal  # noqa: E402
from crm_files.models.identity import Organization, User, UserRole  # noqa: E402
from crm_files.services.access_broker import access_broker  # noqa: E402
from tests.mocks import FakeStorage, as_actor  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def storage(monkeypatch):
    fake = FakeStorage()
    monkeypatch.setattr(access_broker, "storage", fake)
    return fake


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex}@example.com"


@pytest.fixture()
def org(db_session):
    org = Organization(name="Acme Holdings")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture()
def other_org(db_session):
    org = Organization(name="Globex")
    db_session.add(org)
    db_session.commit()
    return org


def _user(db_session, org, full_name="Test User", role=UserRole.member):
    user = User(org_id=org.id, email=_unique_email(), full_name=full_name, role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def member(db_session, org):
    return _user(db_session, org, full_name="Mia Member")


@pytest.fixture()
def second_member(db_session, org):
    return _user(db_session, org, full_name="Sam Second")


@pytest.fixture()
def admin(db_session, org):
    return _user(db_session, org, full_name="Ada Admin", role=UserRole.admin)


@pytest.fixture()
def outsider(db_session, other_org):
    return _user(db_session, other_org, full_name="Otto Outsider")


@pytest.fixture()
def actor(member):
    return as_actor(member)


@pytest.fixture()
def company(db_session, org):
    company = Company(org_id=org.id, name="Initech")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture()
def deal(db_session, org, company):
    deal = Deal(org_id=org.id, company_id=company.id, name="Initech renewal")
    db_session.add(deal)
    db_session.commit()
    return deal


@pytest.fixture()
def contact(db_session, org, company):
    contact = Contact(org_id=org.id, company_id=company.id, first_name="Peter", last_name="Gibbons")
    db_session.add(contact)
    db_session.commit()
    return contact
