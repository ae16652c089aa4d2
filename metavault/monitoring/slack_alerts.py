"""
Slack alerting for the Metavault backend.

Alerts carry the request and user ids from the current request context so an
operator can match them against the JSON log stream and the error_logs table.
"""
import os
from typing import Dict, Optional

import httpx

from metavault.config import settings
from metavault.monitoring.context import get_request_context
from metavault.monitoring.logger import log

SLACK_TIMEOUT_SECONDS = 5


def build_alert_text(message: str, severity: str, module: Optional[str], request_id: Optional[str], user_id: Optional[str], context: Optional[Dict]) -> str:
    env = os.getenv("ENVIRONMENT", "development")
    lines = [f"[{env}] [{severity}] [{module or 'metavault'}] {message}"]
    if request_id:
        lines.append(f"Request ID: {request_id}")
    if user_id:
        lines.append(f"User: {user_id}")
    if context:
        lines.append(f"Context: {context}")
    return "\n".join(lines)


async def send_slack_alert(message: str, context: Optional[Dict] = None, severity: str = "ERROR", module: str = None, request_id: str = None, user_id: str = None) -> bool:
    """Post an alert to the configured webhook. Returns False when nothing was delivered."""
    webhook_url = settings.SLACK_WEBHOOK_URL
    if not webhook_url:
        log("WARNING", "Slack webhook URL not configured", module=module, request_id=request_id)
        return False
    ctx = get_request_context()
    request_id = request_id or ctx.get("request_id")
    user_id = user_id or ctx.get("user_id")
    payload = {"text": build_alert_text(message, severity, module, request_id, user_id, context)}
    try:
        async with httpx.AsyncClient(timeout=SLACK_TIMEOUT_SECONDS) as client:
            resp = await client.post(webhook_url, json=payload)
            resp.raise_for_status()
    except httpx.HTTPError as e:
        log("ERROR", f"Failed to send Slack alert: {e}", module=module, request_id=request_id, user_id=user_id)
        return False
    return True
