"""
Account teardown endpoint.

Password verification happens in the login/account service in front of this
router; this endpoint only runs the transactional teardown.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from metavault.api.deps import get_current_user_id, get_lock_coordinator
from metavault.core.lock_coordinator import LockCoordinator

router = APIRouter(tags=["account"])


@router.post("/delete_account")
async def delete_account(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
):
    await coordinator.delete_account(user_id)
    request.session.clear()
    return JSONResponse(status_code=200, content={"status": "deleted"})
