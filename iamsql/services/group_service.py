"""
services/group_service.py
-------------------------
Group and membership management over the directory cache.

Each operation updates the cached graph first, then mirrors the change on
the membership rows within the caller's session. An edge already in the
requested state changes nothing and writes nothing.
"""

from sqlalchemy import and_, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from iamsql.cache import membership
from iamsql.cache.coordinator import CacheCoordinator
from iamsql.cache.dn import normalize, parse_dn
from iamsql.cache.entities import Group, User
from iamsql.core.exceptions import ValidationError
from iamsql.core.logging import get_logger
from iamsql.models.group import GroupRecord, MembershipRecord
from iamsql.schemas.container import ContainerCreate
from iamsql.schemas.query import SortOrder
from iamsql.services.query import CONTAINER_COMPARATORS, contains, sort_entries

logger = get_logger(__name__)


class GroupService:

    def __init__(self, coordinator: CacheCoordinator) -> None:
        self.coordinator = coordinator

    async def find_all(self) -> dict[str, Group]:
        """All groups keyed by identifier, from the cache."""
        return (await self.coordinator.get_data()).groups

    async def find_by_id(self, group_id: str) -> Group | None:
        return (await self.find_all()).get(normalize(group_id))

    async def find_all_filtered(
        self, criteria: str | None = None, sort: SortOrder | None = None
    ) -> list[Group]:
        groups = (await self.find_all()).values()
        matching = [g for g in groups if not criteria or contains(g.name, criteria)]
        return sort_entries(matching, sort, CONTAINER_COMPARATORS, "name")

    async def create(self, db: AsyncSession, data: ContainerCreate) -> Group:
        """
        Create an empty group, in the database and in the cache.
        Raises ValidationError on a malformed DN or an existing identifier.
        """
        dn = data.dn.lower()
        parse_dn(dn)
        snapshot = await self.coordinator.get_data()
        group = Group(id=normalize(data.name), dn=dn, name=data.name)
        if group.id in snapshot.groups:
            raise ValidationError("name", "already-exist", f"Group '{data.name}' already exists")

        db.add(GroupRecord(id=group.id, name=group.name, dn=group.dn))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ValidationError("name", "already-exist", f"Group '{data.name}' already exists")

        snapshot.groups[group.id] = group
        logger.info("Group created", group_id=group.id, dn=group.dn)
        return group

    async def delete(self, db: AsyncSession, group: Group) -> list[Group]:
        """
        Delete the group and all groups under its DN, with every membership
        referencing them. Not atomic for concurrent readers of the cache.
        """
        snapshot = await self.coordinator.get_data()
        removed = membership.delete_group(snapshot, group)
        ids = [g.id for g in removed]
        if ids:
            await db.execute(
                delete(MembershipRecord).where(
                    or_(MembershipRecord.group_id.in_(ids), MembershipRecord.sub_group_id.in_(ids))
                )
            )
            await db.execute(delete(GroupRecord).where(GroupRecord.id.in_(ids)))
        logger.info("Group deleted", group_id=group.id, removed=len(removed))
        return removed

    async def add_user(self, db: AsyncSession, user: User, group: Group) -> None:
        # group.members mirrors the rows; a stored edge only gets its other side completed
        stored = user.id in group.members
        membership.add_user_to_group(user, group)
        if stored:
            return
        db.add(MembershipRecord(group_id=group.id, user_id=user.id))
        await db.flush()

    async def remove_user(self, db: AsyncSession, user: User, group: Group) -> None:
        if user.id not in group.members and group.id not in user.groups:
            return
        membership.remove_user_from_group(user, group)
        await db.execute(
            delete(MembershipRecord).where(
                and_(MembershipRecord.group_id == group.id, MembershipRecord.user_id == user.id)
            )
        )

    async def add_group(self, db: AsyncSession, sub_group: Group, group: Group) -> None:
        """Make `sub_group` a member of `group`."""
        stored = sub_group.id in group.sub_groups
        membership.add_group_to_group(sub_group, group)
        if stored:
            return
        db.add(MembershipRecord(group_id=group.id, sub_group_id=sub_group.id))
        await db.flush()

    async def remove_group(self, db: AsyncSession, sub_group: Group, group: Group) -> None:
        if sub_group.id not in group.sub_groups and group.id not in sub_group.parent_groups:
            return
        membership.remove_group_from_group(sub_group, group)
        await db.execute(
            delete(MembershipRecord).where(
                and_(
                    MembershipRecord.group_id == group.id,
                    MembershipRecord.sub_group_id == sub_group.id,
                )
            )
        )

    async def empty(self, db: AsyncSession, group: Group) -> list[str]:
        """Remove all the users of the group. Sub-groups are kept."""
        snapshot = await self.coordinator.get_data()
        removed = membership.empty_group(snapshot, group)
        if removed:
            await db.execute(
                delete(MembershipRecord).where(
                    and_(MembershipRecord.group_id == group.id, MembershipRecord.user_id.is_not(None))
                )
            )
        logger.info("Group emptied", group_id=group.id, removed=len(removed))
        return removed
