"""
cache/membership.py
-------------------
Bidirectional membership graph over a snapshot.

Every edge function updates both sides together and is a silent no-op when
the edge is already in the requested state.

There is no lock around the compound operations (group / company / user
deletion): a concurrent reader may observe a partially cascaded deletion.
Writes are rare compared to reads, so reads stay lock-free.
"""

from typing import Iterable

from iamsql.cache.dn import build_ancestor_chain, is_ancestor_or_self
from iamsql.cache.entities import Company, Group, User
from iamsql.cache.snapshot import Snapshot
from iamsql.core.logging import get_logger

logger = get_logger(__name__)


# ── Edges ─────────────────────────────────────────────────────────────────────

def add_user_to_group(user: User, group: Group) -> None:
    if group.id not in user._groups:
        user._groups.append(group.id)
    group._members.add(user.id)


def remove_user_from_group(user: User, group: Group) -> None:
    if group.id in user._groups:
        user._groups.remove(group.id)
    group._members.discard(user.id)


def add_group_to_group(child: Group, parent: Group) -> None:
    child._parent_groups.add(parent.id)
    parent._sub_groups.add(child.id)


def remove_group_from_group(child: Group, parent: Group) -> None:
    child._parent_groups.discard(parent.id)
    parent._sub_groups.discard(child.id)


# ── Compound operations ───────────────────────────────────────────────────────

def _detach_group(snapshot: Snapshot, group: Group) -> None:
    for child_id in list(group._sub_groups):
        child = snapshot.group(child_id)
        if child is None:
            group._sub_groups.discard(child_id)
        else:
            remove_group_from_group(child, group)

    for parent_id in list(group._parent_groups):
        parent = snapshot.group(parent_id)
        if parent is None:
            group._parent_groups.discard(parent_id)
        else:
            remove_group_from_group(group, parent)

    for user_id in list(group._members):
        user = snapshot.user(user_id)
        if user is None:
            group._members.discard(user_id)
        else:
            remove_user_from_group(user, group)


def delete_group(snapshot: Snapshot, group: Group) -> list[Group]:
    """
    Remove the group and every group located under its DN from the snapshot,
    detaching each of them from parents, sub-groups and users.

    Returns:
        The removed groups, for the caller to persist the deletion.
    """
    removed = [g for g in snapshot.groups.values() if is_ancestor_or_self(group.dn, g.dn)]
    for doomed in removed:
        _detach_group(snapshot, doomed)
        snapshot.groups.pop(doomed.id, None)
    logger.info("Groups removed from cache", root=group.id, count=len(removed))
    return removed


def delete_company(snapshot: Snapshot, company: Company) -> list[Company]:
    """
    Remove the company and every company located under its DN. Users are
    left untouched. The quarantine company is never removed.
    """
    removed = [
        c for c in snapshot.companies.values()
        if is_ancestor_or_self(company.dn, c.dn) and c.id != snapshot.quarantine_id
    ]
    for doomed in removed:
        snapshot.companies.pop(doomed.id, None)
    # Survivors under the DN (the quarantine) lose the removed ancestors
    for other in snapshot.companies.values():
        if is_ancestor_or_self(company.dn, other.dn):
            other.ancestor_chain = build_ancestor_chain(snapshot.companies.values(), other)
    logger.info("Companies removed from cache", root=company.id, count=len(removed))
    return removed


def delete_user(snapshot: Snapshot, user: User) -> None:
    for group_id in list(user._groups):
        group = snapshot.group(group_id)
        if group is None:
            user._groups.remove(group_id)
        else:
            remove_user_from_group(user, group)
    snapshot.users.pop(user.id, None)


def empty_group(snapshot: Snapshot, group: Group) -> list[str]:
    """Remove every user from the group. Returns the removed user identifiers."""
    removed = sorted(group._members)
    for user_id in removed:
        user = snapshot.user(user_id)
        if user is None:
            group._members.discard(user_id)
        else:
            remove_user_from_group(user, group)
    return removed


def update_membership(
    snapshot: Snapshot, user: User, group_ids: Iterable[str]
) -> tuple[list[str], list[str]]:
    """
    Make the user a member of exactly the given groups. Unknown groups are
    ignored.

    Returns:
        (added, removed) group identifiers.
    """
    wanted = [g for g in dict.fromkeys(group_ids) if g in snapshot.groups]
    added = [g for g in wanted if g not in user._groups]
    removed = [g for g in user._groups if g not in wanted]
    for group_id in added:
        add_user_to_group(user, snapshot.groups[group_id])
    for group_id in removed:
        group = snapshot.group(group_id)
        if group is None:
            user._groups.remove(group_id)
        else:
            remove_user_from_group(user, group)
    return added, removed
