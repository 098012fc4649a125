"""
cache/entities.py
-----------------
In-memory directory entries, materialized from the database rows.

Relations between entries are stored as identifier collections, never as
object references, and are exposed read-only. Only the functions of
cache/membership.py (and the builders while materializing) write them, and
they always update both sides of an edge together.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(eq=False)
class Company:
    """A company: organisational container of users."""
    id: str
    dn: str
    name: str
    locked: bool = False
    # Companies containing this one, root first, this company last
    ancestor_chain: list["Company"] = field(default_factory=list, repr=False)

    @property
    def ancestor_ids(self) -> list[str]:
        return [c.id for c in self.ancestor_chain]


@dataclass(eq=False)
class Group:
    """A group of users and of other groups."""
    id: str
    dn: str
    name: str
    _members: set[str] = field(default_factory=set, init=False, repr=False)
    _sub_groups: set[str] = field(default_factory=set, init=False, repr=False)
    _parent_groups: set[str] = field(default_factory=set, init=False, repr=False)

    @property
    def members(self) -> frozenset[str]:
        return frozenset(self._members)

    @property
    def sub_groups(self) -> frozenset[str]:
        return frozenset(self._sub_groups)

    @property
    def parent_groups(self) -> frozenset[str]:
        return frozenset(self._parent_groups)


@dataclass(eq=False)
class User:
    """A user, with the lock state mirrored from its credential."""
    id: str
    dn: str
    company: str
    first_name: str | None = None
    last_name: str | None = None
    mails: list[str] = field(default_factory=list)
    secured: bool = False
    locked_at: datetime | None = None
    locked_by: str | None = None
    # Company the user came from, while quarantined
    isolated_company: str | None = None
    _groups: list[str] = field(default_factory=list, init=False, repr=False)

    @property
    def groups(self) -> tuple[str, ...]:
        return tuple(self._groups)

    @property
    def locked(self) -> bool:
        return self.locked_at is not None

    @property
    def isolated(self) -> bool:
        return self.isolated_company is not None


def user_dn(login: str, company_dn: str | None) -> str:
    """DN of a user placed in a company."""
    if company_dn:
        return f"uid={login},{company_dn}"
    return f"uid={login}"
