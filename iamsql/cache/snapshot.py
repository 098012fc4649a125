"""
cache/snapshot.py
-----------------
The registry of directory entries published by the cache coordinator.

A snapshot is built in one go by the builders and then published by
reference; a later rebuild produces a new snapshot instead of mutating the
published one. Individual mutations (membership edges, create, delete) are
applied in place on the published snapshot without locking.
"""

from dataclasses import dataclass, field

from iamsql.cache.dn import build_ancestor_chain, is_ancestor_or_self
from iamsql.cache.entities import Company, Group, User


@dataclass
class Snapshot:
    companies: dict[str, Company] = field(default_factory=dict)
    groups: dict[str, Group] = field(default_factory=dict)
    users: dict[str, User] = field(default_factory=dict)
    quarantine_id: str = "quarantine"

    @property
    def quarantine(self) -> Company:
        return self.companies[self.quarantine_id]

    def company(self, company_id: str | None) -> Company | None:
        return self.companies.get(company_id) if company_id else None

    def group(self, group_id: str | None) -> Group | None:
        return self.groups.get(group_id) if group_id else None

    def user(self, user_id: str | None) -> User | None:
        return self.users.get(user_id) if user_id else None

    def add_company(self, company: Company) -> None:
        """
        Register a company and refresh the ancestor chains of the companies
        it contains, itself included.
        """
        self.companies[company.id] = company
        for other in self.companies.values():
            if is_ancestor_or_self(company.dn, other.dn):
                other.ancestor_chain = build_ancestor_chain(self.companies.values(), other)
