# metavault/core/lock_coordinator.py
"""
Metafile lock coordination.

A user's metafile may be mutated by at most one client at a time. The client
acquires a lock token, performs its cloud synchronization, then releases the
token. Every grant is recorded in the `metafile_locks` ledger, which doubles
as the audit history shown to the user.

Exclusion is enforced by the database, never by in-process mutexes, so any
number of stateless instances can serve the same user:

- the user row is updated with a compare-and-set (`WHERE current_lock_token
  IS NULL` on acquire, `WHERE current_lock_token = :token` on release), which
  takes the row lock on PostgreSQL and the database write lock on SQLite;
- the user update and the ledger write happen in the same transaction, so no
  reader ever sees one without the other.
"""
import shutil
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from metavault.config import settings
from metavault.core.exceptions import AlreadyLocked, InvalidToken, StorageFailure, UserNotFound
from metavault.db.models import MetafileLock
from metavault.db.repositories.cloud_binding_repository import CloudBindingRepository
from metavault.db.repositories.lock_ledger_repository import LockLedgerRepository
from metavault.db.repositories.metafile_version_repository import MetafileVersionRepository
from metavault.db.repositories.oauth_state_repository import OAuthStateRepository
from metavault.db.repositories.user_repository import UserRepository
from metavault.db.session import SessionLocal
from metavault.monitoring.audit import audit_event
from metavault.monitoring.logger import log


class LockCoordinator:
    """Grants, releases and audits per-user metafile locks."""

    def __init__(self, session_factory=None, user_data_dir: Optional[str] = None):
        self.session_factory = session_factory or SessionLocal
        self.user_data_dir = Path(user_data_dir or settings.USER_DATA_DIR)

    async def acquire(self, user_id: str, ip_address: Optional[str] = None) -> str:
        """Grant a new lock token to `user_id`.

        Raises:
            AlreadyLocked: the user already holds an open lock
            UserNotFound: no such user
            StorageFailure: the transaction failed and was rolled back
        """
        token = str(uuid4())
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    users = UserRepository(db)
                    # The compare-and-set must be the first statement of the
                    # transaction so SQLite takes its write lock before reading.
                    if not await users.set_lock_if_free(user_id, token):
                        if await users.get(user_id) is None:
                            raise UserNotFound(f"Unknown user {user_id}", user_id=user_id)
                        raise AlreadyLocked(f"Metafile already locked for {user_id}", user_id=user_id)
                    await LockLedgerRepository(db).open_entry(user_id, token, ip_address)
        except SQLAlchemyError as exc:
            log("ERROR", f"Lock acquire failed: {exc}", module="lock_coordinator", user_id=user_id)
            raise StorageFailure("Lock acquire failed", user_id=user_id) from exc

        log("INFO", "Metafile lock acquired", module="lock_coordinator", user_id=user_id, lock_id=token)
        await audit_event("lock_acquired", user_id, {"lock_id": token, "ip_address": ip_address})
        return token

    async def release(self, user_id: str, token: str) -> None:
        """Release `token`. The token, not the caller's session, is the authority.

        Raises:
            InvalidToken: `token` is not the user's current lock token
            StorageFailure: the transaction failed and was rolled back
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    if not await UserRepository(db).clear_lock_if_matches(user_id, token):
                        raise InvalidToken("Lock token does not match", user_id=user_id)
                    closed = await LockLedgerRepository(db).close_entry(user_id, token)
                    if not closed:
                        log("WARNING", "Released lock had no open ledger entry", module="lock_coordinator", user_id=user_id, lock_id=token)
        except SQLAlchemyError as exc:
            log("ERROR", f"Lock release failed: {exc}", module="lock_coordinator", user_id=user_id)
            raise StorageFailure("Lock release failed", user_id=user_id) from exc

        log("INFO", "Metafile lock released", module="lock_coordinator", user_id=user_id, lock_id=token)
        await audit_event("lock_released", user_id, {"lock_id": token})

    async def list_recent_locks(self, user_id: str, limit: Optional[int] = None) -> List[MetafileLock]:
        """Most recent ledger entries first, open entries included."""
        if limit is None:
            limit = settings.LOCK_HISTORY_LIMIT
        if limit < 0:
            raise ValueError("limit must not be negative")
        try:
            async with self.session_factory() as db:
                return await LockLedgerRepository(db).list_recent(user_id, limit=limit)
        except SQLAlchemyError as exc:
            raise StorageFailure("Lock history unavailable", user_id=user_id) from exc

    async def current_lock(self, user_id: str) -> Optional[str]:
        try:
            async with self.session_factory() as db:
                user = await UserRepository(db).get(user_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Lock lookup failed", user_id=user_id) from exc
        if user is None:
            raise UserNotFound(f"Unknown user {user_id}", user_id=user_id)
        return user.current_lock_token

    async def force_release_all(self, user_id: str) -> Optional[str]:
        """Close the user's open lock without requiring its token.

        Returns the token that was released, or None when the user was unlocked.
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    token = await self._force_release(db, user_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Forced release failed", user_id=user_id) from exc
        if token:
            await audit_event("lock_force_released", user_id, {"lock_id": token})
        return token

    async def delete_account(self, user_id: str) -> None:
        """Tear down every record owned by `user_id` in one transaction.

        The open lock is force-released first, then version history, the lock
        ledger, cloud bindings and pending OAuth states are deleted ahead of
        the user row. Any failure rolls back the whole teardown. The user's
        metafile directory is removed only once the transaction has committed.
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    users = UserRepository(db)
                    if await users.get_for_update(user_id) is None:
                        raise UserNotFound(f"Unknown user {user_id}", user_id=user_id)
                    released = await self._force_release(db, user_id)
                    versions = await MetafileVersionRepository(db).delete_by_user(user_id)
                    locks = await LockLedgerRepository(db).delete_by_user(user_id)
                    bindings = await CloudBindingRepository(db).delete_by_user(user_id)
                    await OAuthStateRepository(db).delete_by_user(user_id)
                    await users.delete(user_id)
        except SQLAlchemyError as exc:
            log("ERROR", f"Account teardown failed: {exc}", module="lock_coordinator", user_id=user_id)
            raise StorageFailure("Account teardown failed", user_id=user_id) from exc

        self._remove_user_data(user_id)
        log("INFO", "Account deleted", module="lock_coordinator", user_id=user_id)
        await audit_event(
            "account_deleted",
            user_id,
            {"released_lock": released, "versions": versions, "locks": locks, "bindings": bindings},
        )

    async def _force_release(self, db: AsyncSession, user_id: str) -> Optional[str]:
        token = await UserRepository(db).force_clear_lock(user_id)
        # Close every open row, not only the one matching the token
        closed = await LockLedgerRepository(db).close_all_open(user_id)
        if token or closed:
            log("INFO", f"Force-released {closed} open lock(s)", module="lock_coordinator", user_id=user_id, lock_id=token)
        return token

    def _remove_user_data(self, user_id: str) -> None:
        base = self.user_data_dir.resolve()
        target = (base / user_id).resolve()
        if base not in target.parents:
            log("WARNING", "Refusing to remove data directory outside USER_DATA_DIR", module="lock_coordinator", user_id=user_id)
            return
        if target.exists():
            shutil.rmtree(target)
