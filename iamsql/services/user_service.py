"""
services/user_service.py
------------------------
Business logic for user provisioning, listing and membership.

Users are read from the cache; every change is applied to the cache and to
the user / membership rows within the caller's session.
"""

from typing import Collection, Iterable

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from iamsql.cache import membership
from iamsql.cache.coordinator import CacheCoordinator
from iamsql.cache.dn import normalize, parse_dn
from iamsql.cache.entities import Company, Group, User, user_dn
from iamsql.core.exceptions import ValidationError
from iamsql.core.logging import get_logger
from iamsql.models.credential import CredentialRecord
from iamsql.models.group import MembershipRecord
from iamsql.models.user import UserRecord
from iamsql.schemas.query import SortOrder
from iamsql.schemas.user import UserCreate, UserUpdate
from iamsql.services.query import USER_COMPARATORS, filter_users, sort_entries

logger = get_logger(__name__)

# Columns accepted by find_all_by
_SEARCHABLE = {
    "id": UserRecord.id,
    "first_name": UserRecord.first_name,
    "last_name": UserRecord.last_name,
    "company": UserRecord.company_id,
    "mails": UserRecord.mails,
}


class UserService:

    def __init__(self, coordinator: CacheCoordinator) -> None:
        self.coordinator = coordinator

    async def find_all(self) -> dict[str, User]:
        """All users keyed by login, from the cache."""
        return (await self.coordinator.get_data()).users

    async def find_by_id(self, login: str) -> User | None:
        return (await self.find_all()).get(normalize(login))

    async def find_all_filtered(
        self,
        required_groups: Collection[Group] | None = None,
        companies: Collection[str] | None = None,
        criteria: str | None = None,
        sort: SortOrder | None = None,
    ) -> list[User]:
        """
        Users matching all the given constraints, sorted. A None constraint
        is not applied. Sort properties: id (default), firstName, lastName,
        company, mail.
        """
        snapshot = await self.coordinator.get_data()
        users = filter_users(snapshot, required_groups, companies, criteria)
        return sort_entries(users, sort, USER_COMPARATORS, "id")

    async def find_all_by(self, db: AsyncSession, attribute: str, value: str) -> list[User]:
        """Users whose stored attribute equals the value, bypassing the cache filters."""
        column = _SEARCHABLE.get(attribute)
        if column is None:
            raise ValidationError("attribute", "unknown-attribute", f"Unknown attribute '{attribute}'")
        result = await db.execute(select(UserRecord.id).where(column == value))
        users = await self.find_all()
        return [users[login] for login in result.scalars().all() if login in users]

    async def create(self, db: AsyncSession, data: UserCreate) -> User:
        """
        Create a user inside an existing company. No credential is created:
        the user cannot authenticate until a password is set.
        """
        snapshot = await self.coordinator.get_data()
        company = snapshot.company(normalize(data.company))
        if company is None:
            raise ValidationError("company", "unknown-id", f"Unknown company '{data.company}'")
        login = normalize(data.id)
        if login in snapshot.users:
            raise ValidationError("id", "already-exist", f"User '{login}' already exists")

        user = User(
            id=login,
            dn=user_dn(login, company.dn),
            company=company.id,
            first_name=data.first_name,
            last_name=data.last_name,
            mails=list(data.mails),
        )
        parse_dn(user.dn)
        db.add(
            UserRecord(
                id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                mails=",".join(user.mails),
                company_id=user.company,
            )
        )
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ValidationError("id", "already-exist", f"User '{login}' already exists")

        snapshot.users[user.id] = user
        logger.info("User created", user_id=user.id, company_id=user.company)
        return user

    async def update(self, db: AsyncSession, data: UserUpdate) -> User:
        """Update the names and mails of a user. Company changes go through move()."""
        user = await self.find_by_id(data.id)
        if user is None:
            raise ValidationError("id", "unknown-id", f"Unknown user '{data.id}'")
        user.first_name = data.first_name
        user.last_name = data.last_name
        user.mails = list(data.mails)

        row = await db.get(UserRecord, user.id)
        if row is not None:
            row.first_name = user.first_name
            row.last_name = user.last_name
            row.mails = ",".join(user.mails)
            await db.flush()
        logger.info("User updated", user_id=user.id)
        return user

    async def delete(self, db: AsyncSession, user: User) -> None:
        """Delete the user with its credential and all its memberships."""
        snapshot = await self.coordinator.get_data()
        await db.execute(delete(CredentialRecord).where(CredentialRecord.user_id == user.id))
        await db.execute(delete(MembershipRecord).where(MembershipRecord.user_id == user.id))
        await db.execute(delete(UserRecord).where(UserRecord.id == user.id))
        membership.delete_user(snapshot, user)
        logger.info("User deleted", user_id=user.id)

    async def update_membership(
        self, db: AsyncSession, user: User, group_ids: Iterable[str]
    ) -> None:
        """Make the user a member of exactly the given groups."""
        snapshot = await self.coordinator.get_data()
        added, removed = membership.update_membership(
            snapshot, user, [normalize(g) for g in group_ids]
        )
        for group_id in added:
            db.add(MembershipRecord(group_id=group_id, user_id=user.id))
        if removed:
            await db.execute(
                delete(MembershipRecord).where(
                    and_(
                        MembershipRecord.user_id == user.id,
                        MembershipRecord.group_id.in_(removed),
                    )
                )
            )
        await db.flush()
        logger.info("Membership updated", user_id=user.id, added=added, removed=removed)

    async def move(self, db: AsyncSession, user: User, company: Company) -> None:
        """Move the user to another company, updating its DN."""
        dn = user_dn(user.id, company.dn)
        parse_dn(dn)
        user.dn = dn
        user.company = company.id

        row = await db.get(UserRecord, user.id)
        if row is not None:
            row.company_id = company.id
            await db.flush()
        logger.info("User moved", user_id=user.id, company_id=company.id)
