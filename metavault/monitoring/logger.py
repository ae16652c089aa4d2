"""
Structured JSON logger for the Metavault backend.
"""
import logging
import json
from datetime import datetime, timezone
from metavault.config import settings

def get_request_context():
    # Import lazily to avoid import cycles
    from metavault.monitoring.context import get_request_context as _g
    return _g()

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "component": getattr(record, "component", None) or record.module,
            "request_id": getattr(record, "request_id", None),
            "user_id": str(getattr(record, "user_id", None)) if getattr(record, "user_id", None) is not None else None,
        }
        for key in ("vault_id", "backend_type", "lock_id", "status", "error"):
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = str(value)
        return json.dumps(log_record)

logger = logging.getLogger("metavault")
logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())
logger.handlers = [handler]

# Helper to log with context
def log(level: str, message: str, component: str = None, request_id: str = None, user_id: str = None, **kwargs):
    # Map legacy 'module' kwarg to 'component' to avoid LogRecord collision
    module = kwargs.pop("module", None)
    component = component or module
    # Fill missing fields from contextvars
    ctx = get_request_context()
    if request_id is None:
        request_id = ctx.get("request_id")
    if user_id is None:
        user_id = ctx.get("user_id")

    extra = {
        "request_id": request_id,
        "user_id": user_id,
        "component": component,
        **kwargs
    }
    logger.log(getattr(logging, level.upper(), logging.INFO), message, extra=extra)
