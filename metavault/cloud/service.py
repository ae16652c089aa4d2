# metavault/cloud/service.py
"""
Glue between stored credentials and live backends.
"""
from typing import Any, Optional

from metavault.cloud.base import CloudBackend, RemoteFileListing
from metavault.cloud.registry import get_backend
from metavault.core.token_store import TokenStore
from metavault.monitoring.audit import audit_event
from metavault.monitoring.logger import log


class CloudService:
    def __init__(self, token_store: Optional[TokenStore] = None, **backend_kwargs: Any):
        """
        Args:
            token_store: credential persistence (defaults to the database-backed store)
            backend_kwargs: extra constructor arguments for every backend (session, timeout, ...)
        """
        self.token_store = token_store or TokenStore()
        self.backend_kwargs = backend_kwargs

    async def open_backend(self, user_id: str, vault_id: str) -> CloudBackend:
        """Return a backend hydrated with the stored credential for the vault.

        A credential refreshed during hydration is saved before the backend is
        handed back, so no call is ever made with a blob the store lacks.

        Raises:
            NotBound: no credential stored for (user_id, vault_id)
            UnknownBackend: the binding names an unregistered backend type
            CredentialExpired: the refresh exchange was rejected
            TransportFailure: the provider could not be reached
        """
        binding = await self.token_store.get_binding(user_id, vault_id)
        backend = get_backend(
            binding.backend_type,
            user_id=user_id,
            identifier=vault_id,
            **self.backend_kwargs,
        )
        refreshed = await backend.load_credential(binding.token)
        if refreshed is not None:
            await self.token_store.save(user_id, vault_id, refreshed, backend_type=binding.backend_type)
            log("INFO", "Refreshed cloud credential persisted", module="cloud_service", user_id=user_id, vault_id=vault_id)
            await audit_event("cloud_token_refreshed", user_id, {"vault_id": vault_id, "backend_type": binding.backend_type})
        return backend

    async def list_files(self, user_id: str, vault_id: str, path: str = "/") -> RemoteFileListing:
        backend = await self.open_backend(user_id, vault_id)
        return backend.list_files(path)
