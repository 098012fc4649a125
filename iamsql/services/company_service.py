"""
services/company_service.py
---------------------------
Company management over the directory cache.

Service layer is responsible for:
  - Keeping the cached snapshot and the database rows in step
  - Enforcing business rules (valid DN, unique identifier)
  - Returning cached entries, never database rows
"""

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from iamsql.cache.coordinator import CacheCoordinator
from iamsql.cache.dn import normalize, parse_dn
from iamsql.cache.entities import Company
from iamsql.cache.membership import delete_company
from iamsql.core.exceptions import ValidationError
from iamsql.core.logging import get_logger
from iamsql.models.company import CompanyRecord
from iamsql.schemas.container import ContainerCreate
from iamsql.schemas.query import SortOrder
from iamsql.services.query import CONTAINER_COMPARATORS, contains, sort_entries

logger = get_logger(__name__)


class CompanyService:

    def __init__(self, coordinator: CacheCoordinator) -> None:
        self.coordinator = coordinator

    async def find_all(self) -> dict[str, Company]:
        """All companies keyed by identifier, from the cache."""
        return (await self.coordinator.get_data()).companies

    async def find_by_id(self, company_id: str) -> Company | None:
        return (await self.find_all()).get(normalize(company_id))

    async def quarantine_company(self) -> Company:
        return (await self.coordinator.get_data()).quarantine

    async def find_all_filtered(
        self, criteria: str | None = None, sort: SortOrder | None = None
    ) -> list[Company]:
        companies = (await self.find_all()).values()
        matching = [c for c in companies if not criteria or contains(c.name, criteria)]
        return sort_entries(matching, sort, CONTAINER_COMPARATORS, "name")

    async def create(self, db: AsyncSession, data: ContainerCreate) -> Company:
        """
        Create a company, in the database and in the cache.
        Raises ValidationError on a malformed DN or an existing identifier.
        """
        dn = data.dn.lower()
        parse_dn(dn)
        snapshot = await self.coordinator.get_data()
        company = Company(id=normalize(data.name), dn=dn, name=data.name)
        if company.id in snapshot.companies:
            raise ValidationError("name", "already-exist", f"Company '{data.name}' already exists")

        db.add(CompanyRecord(id=company.id, name=company.name, dn=company.dn))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ValidationError("name", "already-exist", f"Company '{data.name}' already exists")

        snapshot.add_company(company)
        logger.info("Company created", company_id=company.id, dn=company.dn)
        return company

    async def delete(self, db: AsyncSession, company: Company) -> list[Company]:
        """
        Delete the company and all companies under its DN. Users of these
        companies are not reassigned.
        """
        snapshot = await self.coordinator.get_data()
        removed = delete_company(snapshot, company)
        if removed:
            await db.execute(
                delete(CompanyRecord).where(CompanyRecord.id.in_([c.id for c in removed]))
            )
        logger.info("Company deleted", company_id=company.id, removed=len(removed))
        return removed
