"""
Data access for the metafile lock ledger.

Methods never commit; the caller owns the transaction.
"""
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from metavault.db.models import MetafileLock, utcnow
from typing import Optional, List


class LockLedgerRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def open_entry(self, user_id: str, lock_id: str, ip_address: Optional[str] = None) -> MetafileLock:
        entry = MetafileLock(
            lock_id=lock_id,
            user_id=user_id,
            ip_address=ip_address,
            start_time=utcnow(),
            end_time=None,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def close_entry(self, user_id: str, lock_id: str, end_time: Optional[datetime] = None) -> bool:
        result = await self.db.execute(
            update(MetafileLock)
            .where(
                MetafileLock.lock_id == lock_id,
                MetafileLock.user_id == user_id,
                MetafileLock.end_time.is_(None),
            )
            .values(end_time=end_time or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def close_all_open(self, user_id: str, end_time: Optional[datetime] = None) -> int:
        result = await self.db.execute(
            update(MetafileLock)
            .where(MetafileLock.user_id == user_id, MetafileLock.end_time.is_(None))
            .values(end_time=end_time or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_recent(self, user_id: str, limit: int = 5) -> List[MetafileLock]:
        result = await self.db.execute(
            select(MetafileLock)
            .where(MetafileLock.user_id == user_id)
            .order_by(MetafileLock.start_time.desc(), MetafileLock.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_by_user(self, user_id: str) -> int:
        result = await self.db.execute(delete(MetafileLock).where(MetafileLock.user_id == user_id))
        return result.rowcount
