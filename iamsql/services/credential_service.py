"""
services/credential_service.py
------------------------------
User credential lifecycle: password, authentication, lock and isolation.

States:
  UNLOCKED  → lock()     → LOCKED    (password destroyed)
  UNLOCKED  → isolate()  → ISOLATED  (locked + moved to the quarantine company)
  LOCKED    → unlock()   → UNLOCKED  (still without password)
  ISOLATED  → restore()  → UNLOCKED  (back in the previous company, no password)

A plain unlock() never lifts an isolation; only restore() does.

Security invariants:
  - authenticate() answers a plain bool: an unknown login and a wrong
    password are indistinguishable, and both cost one key derivation.
  - A credential with a value but no salt is a legacy plain-text secret.
    It is still accepted, compared in constant time, and logged as such.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from iamsql.cache.coordinator import CacheCoordinator
from iamsql.cache.entities import User
from iamsql.core.exceptions import InvalidCredentialError, ValidationError
from iamsql.core.logging import get_logger
from iamsql.core.security import PasswordHasher, constant_time_equals
from iamsql.models.credential import CredentialRecord
from iamsql.services.user_service import UserService

logger = get_logger(__name__)

# Stored value the placeholder derivation is compared with
_PLACEHOLDER_VALUE = "0" * 16


class CredentialService:

    def __init__(
        self,
        coordinator: CacheCoordinator,
        users: UserService,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.users = users
        self.hasher = hasher or PasswordHasher.from_settings()

    # ── Credential rows ──────────────────────────────────────────────────────

    @staticmethod
    async def find_credential(db: AsyncSession, login: str) -> CredentialRecord | None:
        result = await db.execute(
            select(CredentialRecord).where(CredentialRecord.user_id == login)
        )
        return result.scalar_one_or_none()

    async def _create_as_needed(self, db: AsyncSession, user: User) -> CredentialRecord:
        credential = await self.find_credential(db, user.id)
        if credential is None:
            credential = CredentialRecord(user_id=user.id)
            db.add(credential)
            await db.flush()
        return credential

    async def get_token(self, db: AsyncSession, login: str) -> str | None:
        """Stored secret value of the user, None when there is none."""
        credential = await self.find_credential(db, login)
        return credential.value if credential else None

    # ── Password ─────────────────────────────────────────────────────────────

    async def set_password(self, db: AsyncSession, user: User, password: str) -> None:
        """Replace the password with a freshly salted hash. No prior check."""
        credential = await self._create_as_needed(db, user)
        salt = self.hasher.generate_salt()
        credential.value = self.hasher.hash(password, salt)
        credential.salt = salt
        user.secured = True
        await db.flush()
        logger.info("Password set", user_id=user.id)

    async def change_password(
        self,
        db: AsyncSession,
        user: User,
        password: str | None,
        new_password: str,
    ) -> None:
        """
        Set a new password when the current one is valid, or when no current
        password is given. The account is unlocked as well.

        Raises:
            InvalidCredentialError: the current password does not match.
        """
        logger.info("Changing password", user_id=user.id)
        if password is None or await self.authenticate(db, user.id, password):
            await self.set_password(db, user, new_password)
            await self.unlock(db, user)
        else:
            raise InvalidCredentialError("password", "login")

    async def authenticate(self, db: AsyncSession, login: str, password: str) -> bool:
        logger.info("Authenticating", login=login)
        credential = await self.find_credential(db, login)

        if credential is None or credential.value is None:
            # Same work as a real attempt, so the answer time tells nothing
            self.hasher.verify(password, self.hasher.placeholder_salt, _PLACEHOLDER_VALUE)
            result = False
        elif credential.salt is None:
            logger.warning("Plain-text credential used", login=login)
            result = constant_time_equals(password, credential.value)
        else:
            result = self.hasher.verify(password, credential.salt, credential.value)

        logger.info("Authenticated", login=login, result=result)
        return result

    # ── Lock / isolation ─────────────────────────────────────────────────────

    async def lock(
        self, db: AsyncSession, principal: str, user: User, isolate: bool = False
    ) -> None:
        """
        Lock the user: the password is cleared, so no authentication can
        succeed until a new one is set. No effect on a locked user.
        """
        if user.locked:
            return
        credential = await self._create_as_needed(db, user)
        credential.locked_at = datetime.now(timezone.utc)
        credential.locked_by = principal
        credential.value = None
        credential.salt = None
        if isolate:
            credential.isolated = user.company
        await db.flush()

        user.locked_at = credential.locked_at
        user.locked_by = principal
        user.secured = False
        logger.info("User locked", user_id=user.id, principal=principal, isolate=isolate)

    async def unlock(self, db: AsyncSession, user: User, isolate_only: bool = False) -> None:
        """
        Unlock the user, without restoring any password. No effect on an
        unlocked user, nor on an isolated one: use restore().
        """
        if not user.locked or (user.isolated and not isolate_only):
            return
        credential = await self._create_as_needed(db, user)
        credential.locked_at = None
        credential.locked_by = None
        if isolate_only:
            credential.isolated = None
        await db.flush()

        user.locked_at = None
        user.locked_by = None
        logger.info("User unlocked", user_id=user.id)

    async def isolate(self, db: AsyncSession, principal: str, user: User) -> None:
        """Lock the user and move it to the quarantine company. No effect when isolated."""
        if user.isolated:
            return
        snapshot = await self.coordinator.get_data()
        previous = user.company
        await self.lock(db, principal, user, isolate=True)
        credential = await self._create_as_needed(db, user)
        # An already locked user was not marked by lock()
        credential.isolated = previous
        await self.users.move(db, user, snapshot.quarantine)
        user.isolated_company = previous
        logger.info("User isolated", user_id=user.id, previous_company=previous)

    async def restore(self, db: AsyncSession, user: User) -> None:
        """
        Move an isolated user back to its previous company and unlock it.
        The password is not restored. No effect when not isolated.

        Raises:
            ValidationError: the previous company no longer exists.
        """
        if not user.isolated:
            return
        snapshot = await self.coordinator.get_data()
        company = snapshot.company(user.isolated_company)
        if company is None:
            raise ValidationError(
                "company", "unknown-id", f"Company '{user.isolated_company}' no longer exists"
            )
        await self.users.move(db, user, company)
        user.isolated_company = None
        await self.unlock(db, user, isolate_only=True)
        logger.info("User restored", user_id=user.id, company_id=company.id)
