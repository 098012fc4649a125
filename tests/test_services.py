"""
Tests for the company, group and user services against the sample database.

Every change is checked twice: on the live snapshot, and on a snapshot
rebuilt from the committed rows.
"""

import pytest
from sqlalchemy import func, select

from iamsql.cache.coordinator import CacheCoordinator
from iamsql.core.config import Settings
from iamsql.core.exceptions import ValidationError
from iamsql.directory import Directory
from iamsql.models import MembershipRecord
from iamsql.schemas.container import ContainerCreate
from iamsql.schemas.query import SortOrder
from iamsql.schemas.user import UserCreate, UserUpdate


async def reload(directory):
    return await CacheCoordinator(directory.session_factory).refresh()


def ids(entries):
    return [e.id for e in entries]


class TestCompanyService:
    """Test cases for CompanyService."""

    async def test_find(self, directory):
        """Test lookups by normalized identifier."""
        companies = directory.companies
        assert (await companies.find_by_id(" ENG ")).dn == "ou=eng,ou=acme,ou=people,dc=sample,dc=com"
        assert await companies.find_by_id("unknown") is None
        assert (await companies.quarantine_company()).id == "quarantine"
        assert "quarantine" in await companies.find_all()

    async def test_find_all_filtered(self, directory):
        """Test filtering on the name and sorting."""
        found = await directory.companies.find_all_filtered("O")
        assert ids(found) == ["other", "people"]

        found = await directory.companies.find_all_filtered(
            None, SortOrder(property="dn", direction="DESC")
        )
        assert ids(found) == ["quarantine", "people", "other", "eng", "acme"]

    async def test_create(self, directory):
        """Test a created company is cached with its chain and persisted."""
        async with directory.session() as db:
            company = await directory.companies.create(
                db, ContainerCreate(dn="OU=Sales,ou=people,dc=sample,dc=com", name="Sales")
            )

        assert company.id == "sales"
        assert company.dn == "ou=sales,ou=people,dc=sample,dc=com"
        assert company.ancestor_ids == ["people", "sales"]
        assert await directory.companies.find_by_id("sales") is company
        assert (await reload(directory)).companies["sales"].name == "Sales"

    async def test_create_parent_of_existing(self, directory):
        """Test creating a parent company updates the chains beneath it."""
        async with directory.session() as db:
            await directory.companies.create(
                db, ContainerCreate(dn="dc=sample,dc=com", name="Sample")
            )
        eng = await directory.companies.find_by_id("eng")
        assert eng.ancestor_ids == ["sample", "people", "acme", "eng"]

    async def test_create_existing(self, directory):
        """Test an existing identifier is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            async with directory.session() as db:
                await directory.companies.create(
                    db, ContainerCreate(dn="ou=acme2,dc=sample,dc=com", name="ACME")
                )
        assert exc_info.value.rule == "already-exist"

    async def test_create_malformed_dn(self, directory):
        """Test a malformed DN is rejected and nothing is created."""
        with pytest.raises(ValidationError) as exc_info:
            async with directory.session() as db:
                await directory.companies.create(db, ContainerCreate(dn="sales", name="Sales"))
        assert exc_info.value.field == "dn"
        assert await directory.companies.find_by_id("sales") is None

    async def test_delete(self, directory):
        """Test the company and its sub-companies are deleted, users are kept."""
        acme = await directory.companies.find_by_id("acme")
        async with directory.session() as db:
            removed = await directory.companies.delete(db, acme)

        assert sorted(ids(removed)) == ["acme", "eng"]
        snapshot = await reload(directory)
        assert set(snapshot.companies) == {"people", "other", "quarantine"}
        assert "jdoe" in snapshot.users

    async def test_delete_quarantine(self, directory):
        """Test the quarantine company cannot be deleted."""
        quarantine = await directory.companies.quarantine_company()
        async with directory.session() as db:
            assert await directory.companies.delete(db, quarantine) == []
        assert await directory.companies.find_by_id("quarantine") is quarantine


class TestGroupService:
    """Test cases for GroupService."""

    async def count_memberships(self, directory, **criteria):
        async with directory.session() as db:
            clauses = [getattr(MembershipRecord, k) == v for k, v in criteria.items()]
            query = select(func.count()).select_from(MembershipRecord).where(*clauses)
            return (await db.execute(query)).scalar_one()

    async def test_find_all_filtered(self, directory):
        """Test filtering on the name and sorting by name."""
        groups = directory.groups
        assert ids(await groups.find_all_filtered("dig")) == ["dig", "dig as", "dig rha"]
        assert ids(
            await groups.find_all_filtered("DIG", SortOrder(property="name", direction="desc"))
        ) == ["dig rha", "dig as", "dig"]
        assert ids(await groups.find_all_filtered("nothing")) == []

    async def test_create(self, directory):
        """Test a created group is empty, cached and persisted."""
        async with directory.session() as db:
            group = await directory.groups.create(
                db, ContainerCreate(dn="cn=ops,ou=groups,dc=sample,dc=com", name="Ops")
            )
        assert group.id == "ops"
        assert group.members == frozenset()
        assert "ops" in (await reload(directory)).groups

        with pytest.raises(ValidationError):
            async with directory.session() as db:
                await directory.groups.create(
                    db, ContainerCreate(dn="cn=ops2,ou=groups,dc=sample,dc=com", name="OPS")
                )

    async def test_delete(self, directory):
        """Test the group, its sub-DN groups and their memberships are deleted."""
        dig = await directory.groups.find_by_id("dig")
        async with directory.session() as db:
            removed = await directory.groups.delete(db, dig)

        assert sorted(ids(removed)) == ["dig", "dig as", "dig rha"]
        snapshot = await reload(directory)
        assert set(snapshot.groups) == {"support"}
        assert snapshot.groups["support"].sub_groups == frozenset()
        assert snapshot.users["alice"].groups == ("support",)
        assert snapshot.users["jdoe"].groups == ()
        assert await self.count_memberships(directory, group_id="dig as") == 0
        assert await self.count_memberships(directory, sub_group_id="dig as") == 0

    async def test_add_remove_user(self, directory):
        """Test a user membership is added once and removed."""
        bob = await directory.users.find_by_id("bob")
        dig = await directory.groups.find_by_id("dig")
        async with directory.session() as db:
            await directory.groups.add_user(db, bob, dig)
            await directory.groups.add_user(db, bob, dig)

        assert await self.count_memberships(directory, group_id="dig", user_id="bob") == 1
        assert (await reload(directory)).users["bob"].groups == ("dig", "support")

        async with directory.session() as db:
            await directory.groups.remove_user(db, bob, dig)
            await directory.groups.remove_user(db, bob, dig)

        assert bob.groups == ("support",)
        assert await self.count_memberships(directory, group_id="dig", user_id="bob") == 0

    async def test_add_half_present_edges(self, directory):
        """Test a stored edge seen from one side only is completed without a second row."""
        alice = await directory.users.find_by_id("alice")
        support = await directory.groups.find_by_id("support")
        dig_as = await directory.groups.find_by_id("dig as")
        alice._groups.remove("support")
        dig_as._parent_groups.discard("support")

        async with directory.session() as db:
            await directory.groups.add_user(db, alice, support)
            await directory.groups.add_group(db, dig_as, support)

        assert "support" in alice.groups
        assert "support" in dig_as.parent_groups
        assert await self.count_memberships(directory, group_id="support", user_id="alice") == 1
        assert await self.count_memberships(
            directory, group_id="support", sub_group_id="dig as"
        ) == 1

    async def test_add_remove_group(self, directory):
        """Test a sub-group edge is added once and removed."""
        support = await directory.groups.find_by_id("support")
        dig = await directory.groups.find_by_id("dig")
        async with directory.session() as db:
            await directory.groups.add_group(db, support, dig)
            await directory.groups.add_group(db, support, dig)

        assert await self.count_memberships(directory, group_id="dig", sub_group_id="support") == 1
        snapshot = await reload(directory)
        assert snapshot.groups["support"].parent_groups == {"dig"}
        assert snapshot.groups["dig"].sub_groups == {"dig rha", "dig as", "support"}

        async with directory.session() as db:
            await directory.groups.remove_group(db, support, dig)
        assert (await reload(directory)).groups["dig"].sub_groups == {"dig rha", "dig as"}

    async def test_empty(self, directory):
        """Test emptying a group removes users and keeps sub-groups."""
        support = await directory.groups.find_by_id("support")
        async with directory.session() as db:
            removed = await directory.groups.empty(db, support)

        assert removed == ["alice", "bob"]
        snapshot = await reload(directory)
        assert snapshot.groups["support"].members == frozenset()
        assert snapshot.groups["support"].sub_groups == {"dig as"}
        assert snapshot.users["alice"].groups == ("dig as",)


class TestUserService:
    """Test cases for UserService."""

    async def test_find_all_filtered(self, directory):
        """Test each constraint of the user listing."""
        users = directory.users
        support = await directory.groups.find_by_id("support")
        dig = await directory.groups.find_by_id("dig")

        assert ids(await users.find_all_filtered()) == ["alice", "bob", "jdoe"]
        assert ids(await users.find_all_filtered(companies=["acme"])) == ["alice", "jdoe"]
        assert ids(await users.find_all_filtered(companies=["people"])) == ["alice", "bob", "jdoe"]
        assert ids(await users.find_all_filtered(required_groups=[support])) == ["alice", "bob"]
        # Direct members only
        assert ids(await users.find_all_filtered(required_groups=[dig])) == []
        assert ids(await users.find_all_filtered(
            required_groups=[support], companies=["acme"]
        )) == ["alice"]
        assert ids(await users.find_all_filtered(criteria="DOE")) == ["jdoe"]
        assert ids(await users.find_all_filtered(criteria="@acme")) == ["alice"]

    async def test_find_all_filtered_sort(self, directory):
        """Test the supported sort properties."""
        users = directory.users
        by_last_name = SortOrder(property="lastName", direction="desc")
        assert ids(await users.find_all_filtered(sort=by_last_name)) == ["bob", "alice", "jdoe"]
        assert ids(await users.find_all_filtered(sort=SortOrder(property="company"))) == [
            "alice", "jdoe", "bob",
        ]
        assert ids(await users.find_all_filtered(sort=SortOrder(property="mail"))) == [
            "bob", "alice", "jdoe",
        ]
        assert ids(await users.find_all_filtered(sort=SortOrder(property="unknown"))) == [
            "alice", "bob", "jdoe",
        ]

    async def test_find_all_by(self, directory):
        """Test searching the stored attributes."""
        async with directory.session() as db:
            assert ids(await directory.users.find_all_by(db, "company", "eng")) == ["jdoe"]
            assert ids(await directory.users.find_all_by(db, "mails", "alice@acme.com")) == ["alice"]
            assert await directory.users.find_all_by(db, "first_name", "Nobody") == []
            with pytest.raises(ValidationError):
                await directory.users.find_all_by(db, "password", "x")

    async def test_create(self, directory):
        """Test a created user is placed in its company, without credential."""
        async with directory.session() as db:
            user = await directory.users.create(db, UserCreate(
                id=" Carol ", first_name="Carol", last_name="King",
                mails=["carol@acme.com", " "], company="ACME",
            ))

        assert user.id == "carol"
        assert user.dn == "uid=carol,ou=acme,ou=people,dc=sample,dc=com"
        assert user.mails == ["carol@acme.com"]
        assert user.secured is False
        reloaded = (await reload(directory)).users["carol"]
        assert reloaded.company == "acme"
        assert reloaded.mails == ["carol@acme.com"]
        async with directory.session() as db:
            assert not await directory.credentials.authenticate(db, "carol", "")

    async def test_create_rejected(self, directory):
        """Test unknown companies and existing logins are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            async with directory.session() as db:
                await directory.users.create(db, UserCreate(id="carol", company="nowhere"))
        assert exc_info.value.field == "company"

        with pytest.raises(ValidationError) as exc_info:
            async with directory.session() as db:
                await directory.users.create(db, UserCreate(id="JDOE", company="acme"))
        assert exc_info.value.rule == "already-exist"

    async def test_update(self, directory):
        """Test names and mails are updated."""
        async with directory.session() as db:
            user = await directory.users.update(db, UserUpdate(
                id="jdoe", first_name="Johnny", last_name="Doe", mails=["johnny@sample.com"],
            ))
        assert user.first_name == "Johnny"
        reloaded = (await reload(directory)).users["jdoe"]
        assert reloaded.first_name == "Johnny"
        assert reloaded.mails == ["johnny@sample.com"]
        assert reloaded.company == "eng"

        with pytest.raises(ValidationError):
            async with directory.session() as db:
                await directory.users.update(db, UserUpdate(id="nobody"))

    async def test_delete(self, directory):
        """Test the user disappears with its memberships and credential."""
        bob = await directory.users.find_by_id("bob")
        async with directory.session() as db:
            await directory.users.delete(db, bob)

        assert await directory.users.find_by_id("bob") is None
        assert (await directory.groups.find_by_id("support")).members == {"alice"}
        snapshot = await reload(directory)
        assert "bob" not in snapshot.users
        assert snapshot.groups["support"].members == {"alice"}
        async with directory.session() as db:
            assert await directory.credentials.get_token(db, "bob") is None

    async def test_update_membership(self, directory):
        """Test the user ends up in exactly the requested groups."""
        alice = await directory.users.find_by_id("alice")
        async with directory.session() as db:
            await directory.users.update_membership(db, alice, ["SUPPORT", "dig", "unknown"])

        assert set(alice.groups) == {"support", "dig"}
        assert (await reload(directory)).users["alice"].groups == ("dig", "support")

    async def test_move(self, directory):
        """Test moving a user changes its company and DN."""
        alice = await directory.users.find_by_id("alice")
        other = await directory.companies.find_by_id("other")
        async with directory.session() as db:
            await directory.users.move(db, alice, other)

        assert alice.dn == "uid=alice,ou=other,ou=people,dc=sample,dc=com"
        assert ids(await directory.users.find_all_filtered(companies=["other"])) == ["alice", "bob"]
        assert (await reload(directory)).users["alice"].company == "other"


class TestDirectory:
    """Test cases for the directory wiring."""

    async def test_from_settings(self, engine):
        """Test node parameters override the hashing settings."""
        config = Settings(_env_file=None, HASH_ITERATION=10, QUARANTINE_DN="OU=Jail")
        directory = Directory.from_settings(config, {"hash-iteration": "25"}, engine)

        assert directory.credentials.hasher.iterations == 25
        assert directory.cache.quarantine_dn == "ou=jail"
        assert directory.users.coordinator is directory.cache
