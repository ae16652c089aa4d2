"""
Metafile lock endpoints.
"""
from calendar import timegm
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from metavault.api.deps import get_client_ip, get_current_user_id, get_lock_coordinator, get_versions
from metavault.config import settings
from metavault.core.exceptions import InvalidToken
from metavault.core.lock_coordinator import LockCoordinator
from metavault.core.versions import MetafileVersions
from metavault.monitoring.logger import log

router = APIRouter(tags=["locks"])


class LockOutDTO(BaseModel):
    lockId: str
    startTime: int
    endTime: Optional[int]
    originatingAddress: Optional[str]


class LockGrantDTO(BaseModel):
    lockId: str


class VersionOutDTO(BaseModel):
    version: int
    lockId: Optional[str]
    size: int
    checksum: Optional[str]
    createdAt: int


def _epoch(value: Optional[datetime]) -> Optional[int]:
    # Columns hold naive UTC
    return timegm(value.utctimetuple()) if value is not None else None


@router.get("/locks")
async def list_locks(
    user_id: str = Depends(get_current_user_id),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
) -> List[LockOutDTO]:
    entries = await coordinator.list_recent_locks(user_id, limit=settings.LOCK_HISTORY_LIMIT)
    return [LockOutDTO(
        lockId=e.lock_id,
        startTime=_epoch(e.start_time),
        endTime=_epoch(e.end_time),
        originatingAddress=e.ip_address,
    ) for e in entries]


@router.post("/lock")
async def acquire_lock(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
) -> LockGrantDTO:
    token = await coordinator.acquire(user_id, ip_address=get_client_ip(request))
    return LockGrantDTO(lockId=token)


@router.post("/unlock/{lock_id}")
async def unlock(
    lock_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
):
    request_id = getattr(request.state, "request_id", None)
    try:
        await coordinator.release(user_id, lock_id)
    except InvalidToken:
        log("WARNING", "Unlock rejected: lock id does not match", module="locks", request_id=request_id, user_id=user_id)
        return JSONResponse(status_code=400, content={"error": "Invalid Request", "request_id": request_id})
    return JSONResponse(status_code=200, content={"status": "unlocked"})


@router.get("/versions")
async def list_versions(
    limit: int = Query(20, ge=0),
    user_id: str = Depends(get_current_user_id),
    versions: MetafileVersions = Depends(get_versions),
) -> List[VersionOutDTO]:
    rows = await versions.list_recent(user_id, limit=limit)
    return [VersionOutDTO(
        version=v.version,
        lockId=v.lock_id,
        size=v.size or 0,
        checksum=v.checksum,
        createdAt=_epoch(v.created_at),
    ) for v in rows]
