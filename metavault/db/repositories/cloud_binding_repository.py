"""
CRUD operations for CloudBinding model.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from metavault.db.models import CloudBinding, utcnow
from typing import Optional, List

class CloudBindingRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str, vault_id: str) -> Optional[CloudBinding]:
        result = await self.db.execute(
            select(CloudBinding).where(CloudBinding.user_id == user_id, CloudBinding.vault_id == vault_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, vault_id: str, token: str, backend_type: Optional[str] = None) -> CloudBinding:
        binding = await self.get(user_id, vault_id)
        if binding is None:
            binding = CloudBinding(user_id=user_id, vault_id=vault_id, backend_type=backend_type, token=token)
            self.db.add(binding)
        else:
            binding.token = token
            binding.updated_at = utcnow()
            if backend_type:
                binding.backend_type = backend_type
        await self.db.flush()
        return binding

    async def list_by_user(self, user_id: str) -> List[CloudBinding]:
        result = await self.db.execute(select(CloudBinding).where(CloudBinding.user_id == user_id))
        return list(result.scalars().all())

    async def delete(self, user_id: str, vault_id: str) -> bool:
        result = await self.db.execute(
            delete(CloudBinding).where(CloudBinding.user_id == user_id, CloudBinding.vault_id == vault_id)
        )
        return result.rowcount > 0

    async def delete_by_user(self, user_id: str) -> int:
        result = await self.db.execute(delete(CloudBinding).where(CloudBinding.user_id == user_id))
        return result.rowcount
