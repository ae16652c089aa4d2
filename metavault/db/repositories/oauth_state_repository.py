"""
CRUD operations for OAuthState correlation records.
"""
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from metavault.db.models import OAuthState
from typing import Optional

class OAuthStateRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, nonce: str, user_id: str, vault_id: str, backend_type: str, expires_at: datetime) -> OAuthState:
        state = OAuthState(
            nonce=nonce,
            user_id=user_id,
            vault_id=vault_id,
            backend_type=backend_type,
            expires_at=expires_at,
        )
        self.db.add(state)
        await self.db.flush()
        return state

    async def pop(self, nonce: str) -> Optional[OAuthState]:
        """Return the record for `nonce` and delete it in the same transaction."""
        result = await self.db.execute(select(OAuthState).where(OAuthState.nonce == nonce).with_for_update())
        state = result.scalar_one_or_none()
        if state is None:
            return None
        deleted = await self.db.execute(delete(OAuthState).where(OAuthState.nonce == nonce))
        # A concurrent callback consumed it first
        if deleted.rowcount != 1:
            return None
        return state

    async def delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(delete(OAuthState).where(OAuthState.expires_at < now))
        return result.rowcount

    async def delete_by_user(self, user_id: str) -> int:
        result = await self.db.execute(delete(OAuthState).where(OAuthState.user_id == user_id))
        return result.rowcount
