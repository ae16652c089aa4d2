# metavault/core/versions.py
"""
Version history of a user's metafile.

Only the current lock holder may record a new version.
"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from metavault.core.exceptions import InvalidToken, StorageFailure, UserNotFound
from metavault.db.models import MetafileVersion
from metavault.db.repositories.metafile_version_repository import MetafileVersionRepository
from metavault.db.repositories.user_repository import UserRepository
from metavault.db.session import SessionLocal
from metavault.monitoring.logger import log


class MetafileVersions:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    async def record(self, user_id: str, lock_token: str, size: int = 0, checksum: Optional[str] = None) -> MetafileVersion:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    user = await UserRepository(db).get_for_update(user_id)
                    if user is None:
                        raise UserNotFound(f"Unknown user {user_id}", user_id=user_id)
                    if user.current_lock_token is None or user.current_lock_token != lock_token:
                        raise InvalidToken("Version recorded without holding the lock", user_id=user_id)
                    repo = MetafileVersionRepository(db)
                    version = await repo.latest_version(user_id) + 1
                    row = await repo.create(user_id, version, lock_token, size=size, checksum=checksum)
        except SQLAlchemyError as exc:
            raise StorageFailure("Version record failed", user_id=user_id) from exc
        log("INFO", f"Metafile version {row.version} recorded", module="versions", user_id=user_id, lock_id=lock_token)
        return row

    async def list_recent(self, user_id: str, limit: int = 20) -> List[MetafileVersion]:
        if limit < 0:
            raise ValueError("limit must not be negative")
        try:
            async with self.session_factory() as db:
                return await MetafileVersionRepository(db).list_recent(user_id, limit=limit)
        except SQLAlchemyError as exc:
            raise StorageFailure("Version history unavailable", user_id=user_id) from exc
