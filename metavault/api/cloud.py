"""
Cloud authorization endpoints (provider redirect flow).
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from metavault.api.deps import get_backend_factory, get_current_user_id, get_state_store, get_token_store
from metavault.cloud.oauth_state import OAuthStateStore
from metavault.core.token_store import TokenStore
from metavault.monitoring.audit import audit_event
from metavault.monitoring.logger import log

router = APIRouter(prefix="/cloud", tags=["cloud"])


class AuthorizeOutDTO(BaseModel):
    authorizeUrl: str


@router.get("/{backend_type}/authorize")
async def authorize(
    backend_type: str,
    vault: str,
    user_id: str = Depends(get_current_user_id),
    state_store: OAuthStateStore = Depends(get_state_store),
    backend_factory=Depends(get_backend_factory),
) -> AuthorizeOutDTO:
    backend = backend_factory(backend_type, user_id=user_id, identifier=vault, state_store=state_store)
    url = await backend.build_authorization_url(vault)
    return AuthorizeOutDTO(authorizeUrl=url)


@router.get("/{backend_type}/callback")
async def callback(
    backend_type: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    state_store: OAuthStateStore = Depends(get_state_store),
    token_store: TokenStore = Depends(get_token_store),
    backend_factory=Depends(get_backend_factory),
) -> dict:
    request_id = getattr(request.state, "request_id", None)
    backend = backend_factory(backend_type, user_id=user_id, state_store=state_store)
    result = await backend.complete_authorization(dict(request.query_params))
    if result.success:
        await token_store.save(result.user_id or user_id, result.vault, result.access_token, backend_type=result.backend_type)
        await audit_event("cloud_authorized", user_id, {"vault_id": result.vault, "backend_type": result.backend_type, "email": result.email}, request_id=request_id)
        log("INFO", "Cloud account authorized", module="cloud", request_id=request_id, user_id=user_id, vault_id=result.vault)
    else:
        log("INFO", f"Cloud authorization not completed: {result.error_message}", module="cloud", request_id=request_id, user_id=user_id)
    return result.to_response()
