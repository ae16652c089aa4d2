from metavault.db.models import ErrorLog, utcnow
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import uuid4


class ErrorRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, *, request_id=None, user_id=None, component=None, function=None, severity="ERROR", message="", details=None, stacktrace=None):
        el = ErrorLog(
            id=uuid4(),
            request_id=request_id,
            user_id=user_id,
            component=component,
            function=function,
            severity=severity,
            message=message,
            details=details,
            stacktrace=stacktrace,
            created_at=utcnow(),
        )
        self.db.add(el)
        await self.db.commit()
        await self.db.refresh(el)
        return el
