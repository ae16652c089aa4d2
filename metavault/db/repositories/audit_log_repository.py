"""
Read access for AuditLog model.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from metavault.db.models import AuditLog
from typing import List, Optional

class AuditLogRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_by_user(self, user_id: str, action: Optional[str] = None, limit: int = 100) -> List[AuditLog]:
        query = select(AuditLog).where(AuditLog.user_id == user_id)
        if action:
            query = query.where(AuditLog.action == action)
        result = await self.db.execute(query.order_by(AuditLog.created_at.desc()).limit(limit))
        return list(result.scalars().all())
