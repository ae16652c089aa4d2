"""
Data access for User records, including the current-lock field.

Methods never commit; the caller owns the transaction.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from metavault.db.models import User, utcnow
from typing import Optional


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_id: str, email: Optional[str] = None, password_hash: Optional[str] = None) -> User:
        user = User(user_id=user_id, email=email, password_hash=password_hash)
        self.db.add(user)
        await self.db.flush()
        return user

    async def get(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, user_id: str) -> Optional[User]:
        """Read the user row with a row-level lock (no-op on SQLite)."""
        result = await self.db.execute(
            select(User).where(User.user_id == user_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def set_lock_if_free(self, user_id: str, token: str) -> bool:
        """Compare-and-set: store `token` only when no lock is held."""
        result = await self.db.execute(
            update(User)
            .where(User.user_id == user_id, User.current_lock_token.is_(None))
            .values(current_lock_token=token, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def clear_lock_if_matches(self, user_id: str, token: str) -> bool:
        """Compare-and-set: clear the lock only when `token` is the current one."""
        result = await self.db.execute(
            update(User)
            .where(User.user_id == user_id, User.current_lock_token == token)
            .values(current_lock_token=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def force_clear_lock(self, user_id: str) -> Optional[str]:
        """Clear whatever lock is held and return the token that was cleared."""
        user = await self.get_for_update(user_id)
        if user is None or user.current_lock_token is None:
            return None
        token = user.current_lock_token
        await self.db.execute(
            update(User)
            .where(User.user_id == user_id)
            .values(current_lock_token=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return token

    async def delete(self, user_id: str) -> bool:
        result = await self.db.execute(delete(User).where(User.user_id == user_id))
        return result.rowcount > 0
