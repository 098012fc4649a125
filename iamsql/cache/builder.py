"""
cache/builder.py
----------------
Materialize the directory entries from the database rows.

The builders only depend on their arguments: concurrent rebuilds each
produce their own consistent result, and the coordinator publishes
whichever finishes last. Rows only need the attributes of the ORM models
(see iamsql/models), so plain objects work as well.
"""

import re
from typing import Any, Iterable, Mapping

from iamsql.cache.dn import build_ancestor_chain, parse_dn, to_rdn
from iamsql.cache.entities import Company, Group, User, user_dn
from iamsql.cache.membership import add_group_to_group
from iamsql.core.logging import get_logger

logger = get_logger(__name__)

_MAIL_SEPARATORS = re.compile(r"[,;]")


def split_mails(raw: str | None) -> list:
    return [m.strip() for m in _MAIL_SEPARATORS.split(raw or "") if m.strip()]


def build_quarantine(quarantine_dn: str) -> Company:
    """The read-only company holding the isolated users."""
    name = to_rdn(quarantine_dn)
    return Company(id=name, dn=quarantine_dn.lower(), name=name, locked=True)


def build_companies(rows: Iterable, quarantine_dn: str = "ou=quarantine") -> dict[str, Company]:
    """
    Build all companies, keyed by identifier, with their ancestor chains.
    The quarantine company is always present, replacing any row with the
    same identifier.

    Raises:
        ValidationError: a company DN is malformed.
    """
    companies: dict[str, Company] = {}
    for row in rows:
        companies[row.id] = Company(id=row.id, dn=row.dn.lower(), name=row.name)

    quarantine = build_quarantine(quarantine_dn)
    companies[quarantine.id] = quarantine

    for company in companies.values():
        parse_dn(company.dn)
    for company in companies.values():
        company.ancestor_chain = build_ancestor_chain(companies.values(), company)
    return companies


def build_groups(group_rows: Iterable, membership_rows: Iterable) -> dict[str, Group]:
    """
    Build all groups with their user members and their sub-group edges, in
    a single pass over the membership rows.
    """
    groups: dict[str, Group] = {}
    for row in group_rows:
        groups[row.id] = Group(id=row.id, dn=row.dn.lower(), name=row.name)

    for membership in membership_rows:
        group = groups.get(membership.group_id)
        if group is None:
            logger.warning("Membership of unknown group skipped", group_id=membership.group_id)
            continue
        if membership.user_id is None:
            sub_group = groups.get(membership.sub_group_id)
            if sub_group is None:
                logger.warning(
                    "Unknown sub-group skipped",
                    group_id=group.id,
                    sub_group_id=membership.sub_group_id,
                )
                continue
            add_group_to_group(sub_group, group)
        else:
            # The user side is completed by build_users
            group._members.add(membership.user_id)
    return groups


def build_users(
    user_rows: Iterable,
    credentials: Mapping[str, Any],
    companies: Mapping[str, Company],
    groups: Mapping[str, Group],
) -> dict[str, User]:
    """
    Build all users and complete their group memberships.

    Args:
        user_rows: User rows.
        credentials: Credential rows keyed by user identifier.
        companies: Built companies, to compute the user DN.
        groups: Built groups, their members are linked back to the users.
    """
    users: dict[str, User] = {}
    for row in user_rows:
        credential = credentials.get(row.id)
        company = companies.get(row.company_id)
        users[row.id] = User(
            id=row.id,
            dn=user_dn(row.id, company.dn if company else None),
            company=row.company_id,
            first_name=row.first_name,
            last_name=row.last_name,
            mails=split_mails(row.mails),
            secured=credential is not None and credential.value is not None,
            locked_at=credential.locked_at if credential else None,
            locked_by=credential.locked_by if credential else None,
            isolated_company=credential.isolated if credential else None,
        )

    for group_id in sorted(groups):
        group = groups[group_id]
        for member in list(group._members):
            user = users.get(member)
            if user is None:
                logger.warning("Unknown member dropped", group_id=group_id, user_id=member)
                group._members.discard(member)
            elif group_id not in user._groups:
                user._groups.append(group_id)
    return users
