# metavault/core/token_store.py
"""
Persistence of cloud credential blobs per (user, vault).

Bindings are independent of one another and of metafile locking; a refresh
of one vault's credential never touches another binding.
"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from metavault.core.exceptions import NotBound, StorageFailure
from metavault.db.models import CloudBinding
from metavault.db.repositories.cloud_binding_repository import CloudBindingRepository
from metavault.db.session import SessionLocal
from metavault.monitoring.logger import log


class TokenStore:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    async def save(self, user_id: str, vault_id: str, blob: str, backend_type: Optional[str] = None) -> None:
        """Insert or overwrite the binding for (user_id, vault_id)."""
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await CloudBindingRepository(db).upsert(user_id, vault_id, blob, backend_type=backend_type)
        except SQLAlchemyError as exc:
            log("ERROR", f"Token save failed: {exc}", module="token_store", user_id=user_id, vault_id=vault_id)
            raise StorageFailure("Token save failed", user_id=user_id) from exc
        log("INFO", "Cloud credential stored", module="token_store", user_id=user_id, vault_id=vault_id)

    async def get_binding(self, user_id: str, vault_id: str) -> CloudBinding:
        try:
            async with self.session_factory() as db:
                binding = await CloudBindingRepository(db).get(user_id, vault_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Token lookup failed", user_id=user_id) from exc
        if binding is None:
            raise NotBound(f"No credential for vault {vault_id}", user_id=user_id)
        return binding

    async def load(self, user_id: str, vault_id: str) -> str:
        binding = await self.get_binding(user_id, vault_id)
        return binding.token

    async def list_for_user(self, user_id: str) -> List[CloudBinding]:
        try:
            async with self.session_factory() as db:
                return await CloudBindingRepository(db).list_by_user(user_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Token listing failed", user_id=user_id) from exc

    async def delete(self, user_id: str, vault_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    return await CloudBindingRepository(db).delete(user_id, vault_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Token delete failed", user_id=user_id) from exc
