"""
services/query.py
-----------------
In-memory filtering and sorting of the cached entries.

Pagination is left to the caller: listings are plain sorted lists.
"""

from typing import Callable, Collection, Iterable, TypeVar

from iamsql.cache.entities import User
from iamsql.cache.snapshot import Snapshot
from iamsql.schemas.query import SortOrder

T = TypeVar("T")


def _text(value: str | None) -> str:
    return (value or "").casefold()


def _first_mail(user: User) -> str | None:
    return user.mails[0] if user.mails else None


CONTAINER_COMPARATORS: dict[str, Callable] = {
    "id": lambda c: _text(c.id),
    "name": lambda c: _text(c.name),
    "dn": lambda c: _text(c.dn),
}

USER_COMPARATORS: dict[str, Callable] = {
    "id": lambda u: _text(u.id),
    "firstName": lambda u: _text(u.first_name),
    "lastName": lambda u: _text(u.last_name),
    "company": lambda u: _text(u.company),
    "mail": lambda u: _text(_first_mail(u)),
}


def contains(value: str | None, criteria: str) -> bool:
    return criteria.casefold() in _text(value)


def sort_entries(
    entries: Iterable[T],
    sort: SortOrder | None,
    comparators: dict[str, Callable],
    default: str,
) -> list[T]:
    """
    Sort the entries by the requested property, falling back to `default`
    for unknown properties. Ties are broken by identifier.
    """
    sort = sort or SortOrder(property=default)
    key = comparators.get(sort.property) or comparators[default]
    unique = {id(e): e for e in entries}.values()
    return sorted(unique, key=lambda e: (key(e), _text(e.id)), reverse=sort.descending)


def match_user(user: User, criteria: str | None) -> bool:
    if not criteria:
        return True
    return (
        contains(user.first_name, criteria)
        or contains(user.last_name, criteria)
        or contains(user.id, criteria)
        or contains(_first_mail(user), criteria)
    )


def filter_users(
    snapshot: Snapshot,
    required_groups: Collection | None = None,
    companies: Collection[str] | None = None,
    criteria: str | None = None,
) -> list[User]:
    """
    Users visible through the constraints:
      - member of at least one of the required groups, when given,
      - inside one of the companies, or one of their sub-companies, when given,
      - matching the criteria on first name, last name, login or first mail.
    """
    if required_groups is None:
        candidates = list(snapshot.users)
    else:
        candidates = sorted({m for g in required_groups for m in g.members})

    result = []
    for user_id in candidates:
        user = snapshot.user(user_id)
        if user is None:
            continue
        if companies is not None:
            company = snapshot.company(user.company)
            tree = company.ancestor_ids if company else [user.company]
            if not any(c in companies for c in tree):
                continue
        if match_user(user, criteria):
            result.append(user)
    return result
