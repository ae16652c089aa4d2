"""
Audit logging for the Metavault backend.
"""
from metavault.db.models import AuditLog, utcnow
from metavault.db.session import SessionLocal
from uuid import uuid4
from typing import Any, Dict, Optional
from metavault.monitoring.logger import log


async def audit_event(action: str, user_id: Optional[str], payload: Dict[str, Any], actor: Optional[str] = None, request_id: Optional[str] = None):
    """Persist an audit log entry in a fail-safe way.

    action: a short action name (e.g. 'lock_acquired')
    user_id may be None.
    This helper never raises: on DB errors it logs locally and returns.
    """
    try:
        async with SessionLocal() as session:
            audit_log = AuditLog(
                id=uuid4(),
                user_id=user_id,
                action=action,
                actor=actor,
                details=payload,
                created_at=utcnow(),
            )
            session.add(audit_log)
            await session.commit()
    except Exception as e:
        # Fail-safe: log locally and do not raise
        log("ERROR", f"Failed to write audit_event {action}: {e}", component="audit", request_id=request_id, user_id=user_id)
