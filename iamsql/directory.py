"""
directory.py
------------
Wiring of the directory: one cache coordinator shared by the services.

Usage:
    directory = Directory.from_settings()
    async with directory.session() as db:
        ok = await directory.credentials.authenticate(db, "jdoe", "secret")
"""

from typing import AsyncContextManager, Mapping

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from iamsql.cache.coordinator import CacheCoordinator
from iamsql.core.config import Settings, settings
from iamsql.core.security import PasswordHasher
from iamsql.db.session import create_engine, create_session_factory, session_scope
from iamsql.services.company_service import CompanyService
from iamsql.services.credential_service import CredentialService
from iamsql.services.group_service import GroupService
from iamsql.services.user_service import UserService


class Directory:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hasher: PasswordHasher | None = None,
        config: Settings | None = None,
    ) -> None:
        config = config or settings
        self.session_factory = session_factory
        self.cache = CacheCoordinator(
            session_factory,
            quarantine_dn=config.QUARANTINE_DN,
            ttl_seconds=config.CACHE_TTL_SECONDS,
        )
        self.companies = CompanyService(self.cache)
        self.groups = GroupService(self.cache)
        self.users = UserService(self.cache)
        self.credentials = CredentialService(
            self.cache, self.users, hasher or PasswordHasher.from_settings(config)
        )

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        parameters: Mapping[str, str] | None = None,
        engine: AsyncEngine | None = None,
    ) -> "Directory":
        """
        Build a directory on the configured database. `parameters` are the
        per-node hashing overrides (see PasswordHasher.from_parameters).
        """
        config = config or settings
        engine = engine or create_engine(config.DATABASE_URL)
        hasher = PasswordHasher.from_parameters(parameters or {}, config)
        return cls(create_session_factory(engine), hasher, config)

    def session(self) -> AsyncContextManager[AsyncSession]:
        return session_scope(self.session_factory)
