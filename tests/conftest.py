"""
Shared fixtures: a file-backed SQLite database seeded with a small directory.

Companies:
    people  ou=people,dc=sample,dc=com
    acme    ou=acme,ou=people,dc=sample,dc=com
    eng     ou=eng,ou=acme,ou=people,dc=sample,dc=com
    other   ou=other,ou=people,dc=sample,dc=com

Groups:
    dig       cn=dig,ou=groups,dc=sample,dc=com
    dig rha   cn=dig rha,cn=dig,ou=groups,dc=sample,dc=com   (sub-group of dig)
    dig as    cn=dig as,cn=dig,ou=groups,dc=sample,dc=com    (sub-group of dig and support)
    support   cn=support,ou=groups,dc=sample,dc=com

Users:
    jdoe   eng    member of "dig rha"   password "Secret1" (salted)
    alice  acme   member of "dig as" and "support", no credential
    bob    other  member of "support"   legacy plain-text credential "legacy1"
"""

import pytest
from sqlalchemy.pool import NullPool

from iamsql.core.security import PasswordHasher
from iamsql.db.session import create_engine, create_session_factory
from iamsql.directory import Directory
from iamsql.models import (
    Base,
    CompanyRecord,
    CredentialRecord,
    GroupRecord,
    MembershipRecord,
    UserRecord,
)

COMPANIES = [
    ("people", "People", "ou=people,dc=sample,dc=com"),
    ("acme", "Acme", "ou=acme,ou=people,dc=sample,dc=com"),
    ("eng", "Eng", "ou=eng,ou=acme,ou=people,dc=sample,dc=com"),
    ("other", "Other", "ou=other,ou=people,dc=sample,dc=com"),
]

GROUPS = [
    ("dig", "DIG", "cn=dig,ou=groups,dc=sample,dc=com"),
    ("dig rha", "DIG RHA", "cn=dig rha,cn=dig,ou=groups,dc=sample,dc=com"),
    ("dig as", "DIG AS", "cn=dig as,cn=dig,ou=groups,dc=sample,dc=com"),
    ("support", "Support", "cn=support,ou=groups,dc=sample,dc=com"),
]


@pytest.fixture
def hasher():
    """Hasher with the default parameters."""
    return PasswordHasher(salt_length=64, iterations=10, key_length=256)


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'iamsql.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def seeded(session_factory, hasher):
    """Insert the sample directory rows."""
    salt = hasher.generate_salt()
    async with session_factory() as db:
        db.add_all(CompanyRecord(id=i, name=n, dn=dn) for i, n, dn in COMPANIES)
        db.add_all(GroupRecord(id=i, name=n, dn=dn) for i, n, dn in GROUPS)
        db.add_all([
            UserRecord(id="jdoe", first_name="John", last_name="Doe",
                       mails="john.doe@sample.com;jdoe@acme.com", company_id="eng"),
            UserRecord(id="alice", first_name="Alice", last_name="Martin",
                       mails="alice@acme.com", company_id="acme"),
            UserRecord(id="bob", first_name="Bob", last_name="Zed",
                       mails=None, company_id="other"),
        ])
        db.add_all([
            MembershipRecord(group_id="dig", sub_group_id="dig rha"),
            MembershipRecord(group_id="dig", sub_group_id="dig as"),
            MembershipRecord(group_id="support", sub_group_id="dig as"),
            MembershipRecord(group_id="dig rha", user_id="jdoe"),
            MembershipRecord(group_id="dig as", user_id="alice"),
            MembershipRecord(group_id="support", user_id="alice"),
            MembershipRecord(group_id="support", user_id="bob"),
        ])
        db.add_all([
            CredentialRecord(user_id="jdoe", salt=salt, value=hasher.hash("Secret1", salt)),
            CredentialRecord(user_id="bob", salt=None, value="legacy1"),
        ])
        await db.commit()
    return session_factory


@pytest.fixture
async def directory(seeded, hasher):
    """A directory over the sample rows, with its cache already built."""
    directory = Directory(seeded, hasher)
    await directory.cache.get_data()
    return directory
