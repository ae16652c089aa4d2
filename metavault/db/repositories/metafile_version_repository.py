"""
Data access for metafile version history.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
from metavault.db.models import MetafileVersion
from typing import Optional, List


class MetafileVersionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_id: str, version: int, lock_id: Optional[str], size: int = 0, checksum: Optional[str] = None) -> MetafileVersion:
        row = MetafileVersion(
            user_id=user_id,
            version=version,
            lock_id=lock_id,
            size=size,
            checksum=checksum,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def latest_version(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.max(MetafileVersion.version)).where(MetafileVersion.user_id == user_id)
        )
        return result.scalar_one_or_none() or 0

    async def list_recent(self, user_id: str, limit: int = 20) -> List[MetafileVersion]:
        result = await self.db.execute(
            select(MetafileVersion)
            .where(MetafileVersion.user_id == user_id)
            .order_by(MetafileVersion.version.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_by_user(self, user_id: str) -> int:
        result = await self.db.execute(delete(MetafileVersion).where(MetafileVersion.user_id == user_id))
        return result.rowcount
