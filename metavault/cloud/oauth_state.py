# metavault/cloud/oauth_state.py
"""
Short-lived correlation records between an authorization request and the
provider's callback.

Initiation stores (user, vault, backend) under a random nonce that travels
as the OAuth `state` parameter. The callback consumes the record exactly
once, so the vault id is never taken from client-supplied input.
"""
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from metavault.config import settings
from metavault.core.exceptions import StorageFailure
from metavault.db.models import OAuthState, utcnow
from metavault.db.repositories.oauth_state_repository import OAuthStateRepository
from metavault.db.session import SessionLocal
from metavault.monitoring.logger import log


class OAuthStateStore:
    def __init__(self, session_factory=None, ttl_seconds: Optional[int] = None):
        self.session_factory = session_factory or SessionLocal
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OAUTH_STATE_TTL_SECONDS

    async def issue(self, user_id: str, vault_id: str, backend_type: str) -> str:
        nonce = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(seconds=self.ttl_seconds)
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await OAuthStateRepository(db).create(nonce, user_id, vault_id, backend_type, expires_at)
        except SQLAlchemyError as exc:
            raise StorageFailure("Could not store authorization state", user_id=user_id) from exc
        return nonce

    async def consume(self, nonce: str) -> Optional[OAuthState]:
        """Return and discard the record for `nonce`; None if unknown or expired."""
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    state = await OAuthStateRepository(db).pop(nonce)
        except SQLAlchemyError as exc:
            raise StorageFailure("Could not read authorization state") from exc
        if state is None:
            return None
        if state.expires_at < utcnow():
            log("INFO", "Discarded expired authorization state", module="oauth_state", user_id=state.user_id)
            return None
        return state

    async def purge_expired(self) -> int:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    return await OAuthStateRepository(db).delete_expired(utcnow())
        except SQLAlchemyError as exc:
            raise StorageFailure("Could not purge authorization states") from exc
