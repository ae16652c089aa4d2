from metavault.db.session import SessionLocal
from metavault.db.repositories.error_repository import ErrorRepository
from metavault.monitoring.logger import log
from metavault.monitoring.slack_alerts import send_slack_alert


async def record_error(component: str, function: str, message: str, details: dict = None, stacktrace: str = None, request_id: str = None, user_id: str = None, severity: str = "ERROR", alert: bool = True):
    try:
        async with SessionLocal() as db:
            repo = ErrorRepository(db)
            await repo.create(
                request_id=request_id,
                user_id=user_id,
                component=component,
                function=function,
                severity=severity,
                message=message,
                details=details,
                stacktrace=stacktrace,
            )
    except Exception as e:
        log("ERROR", f"Failed to persist ErrorLog: {e}", component="errors", request_id=request_id, user_id=user_id)
    # Always log
    log(severity, message, component=component, request_id=request_id, user_id=user_id)
    if alert and severity in ("ERROR", "CRITICAL"):
        try:
            await send_slack_alert(message=message, context={"details": details}, severity=severity, module=component, request_id=request_id, user_id=user_id)
        except Exception as e:
            log("ERROR", f"Slack alert for ErrorLog failed: {e}", component="errors", request_id=request_id, user_id=user_id)
