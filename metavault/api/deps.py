"""
Shared FastAPI dependencies.
"""
from typing import Optional

from fastapi import HTTPException, Request

from metavault.core.lock_coordinator import LockCoordinator
from metavault.core.token_store import TokenStore
from metavault.core.versions import MetafileVersions
from metavault.cloud.oauth_state import OAuthStateStore
from metavault.cloud.registry import get_backend
from metavault.monitoring.context import set_request_context


def get_current_user_id(request: Request) -> str:
    """User id bound to the browser session by the login flow."""
    uid = request.session.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Not logged in")
    uid = str(uid)
    set_request_context(user_id=uid)
    return uid


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_lock_coordinator() -> LockCoordinator:
    return LockCoordinator()


def get_versions() -> MetafileVersions:
    return MetafileVersions()


def get_token_store() -> TokenStore:
    return TokenStore()


def get_state_store() -> OAuthStateStore:
    return OAuthStateStore()


def get_backend_factory():
    """Callable building a CloudBackend from a type tag and constructor kwargs."""
    return get_backend
