"""
cache/coordinator.py
--------------------
Owner of the published directory snapshot.

Flow of get_data():
  1. ensure_cached() rebuilds once per cache miss: first call, expired TTL
     or explicit clear().
  2. The published snapshot is returned, or rebuilt when none exists.

There is no synchronization: concurrent first calls may each rebuild a full
snapshot. This only wastes work, since each rebuild is self-consistent and
publishing swaps a single reference.
"""

import time
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from iamsql.cache.builder import build_companies, build_groups, build_users
from iamsql.cache.dn import to_rdn
from iamsql.cache.snapshot import Snapshot
from iamsql.core.config import settings
from iamsql.core.logging import get_logger
from iamsql.models import (
    CompanyRecord,
    CredentialRecord,
    GroupRecord,
    MembershipRecord,
    UserRecord,
)

logger = get_logger(__name__)


class CacheCoordinator:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quarantine_dn: str | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self.quarantine_dn = (quarantine_dn or settings.QUARANTINE_DN).lower()
        self.ttl_seconds = settings.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._snapshot: Snapshot | None = None
        self._cached_at: float | None = None

    @property
    def snapshot(self) -> Snapshot | None:
        """The published snapshot, without triggering any rebuild."""
        return self._snapshot

    async def get_data(self) -> Snapshot:
        await self.ensure_cached()
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = await self.refresh()
        return snapshot

    async def ensure_cached(self) -> bool:
        """Rebuild the snapshot on a cache miss. Always returns True."""
        if not self._is_cached():
            await self.refresh()
        return True

    def _is_cached(self) -> bool:
        if self._cached_at is None:
            return False
        if self.ttl_seconds and self._clock() - self._cached_at >= self.ttl_seconds:
            return False
        return True

    def clear(self) -> None:
        """Invalidate the cache; the next access rebuilds the snapshot."""
        self._cached_at = None

    async def refresh(self) -> Snapshot:
        """Rebuild a snapshot from the database and publish it."""
        started = time.perf_counter()
        async with self._session_factory() as db:
            snapshot = await self.load(db)
        self._snapshot = snapshot
        self._cached_at = self._clock()
        logger.info(
            "Directory cache rebuilt",
            companies=len(snapshot.companies),
            groups=len(snapshot.groups),
            users=len(snapshot.users),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return snapshot

    async def load(self, db: AsyncSession) -> Snapshot:
        """Build a new snapshot from the rows visible to this session."""
        company_rows = (await db.execute(select(CompanyRecord))).scalars().all()
        group_rows = (await db.execute(select(GroupRecord))).scalars().all()
        membership_rows = (await db.execute(select(MembershipRecord))).scalars().all()
        user_rows = (await db.execute(select(UserRecord))).scalars().all()
        credential_rows = (await db.execute(select(CredentialRecord))).scalars().all()

        companies = build_companies(company_rows, self.quarantine_dn)
        groups = build_groups(group_rows, membership_rows)
        users = build_users(
            user_rows,
            {c.user_id: c for c in credential_rows},
            companies,
            groups,
        )
        return Snapshot(
            companies=companies,
            groups=groups,
            users=users,
            quarantine_id=to_rdn(self.quarantine_dn),
        )
