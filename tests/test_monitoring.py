import json
import logging

import httpx
import pytest
from sqlalchemy import select

from metavault.config import settings
from metavault.db.models import ErrorLog
from metavault.db.session import SessionLocal
from metavault.monitoring import slack_alerts
from metavault.monitoring.audit import audit_event
from metavault.monitoring.context import set_request_context
from metavault.monitoring.errors import record_error
from metavault.monitoring.logger import JsonFormatter, log


class FailingSessionCtx:
    async def __aenter__(self):
        raise Exception("DB down")

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.mark.asyncio
async def test_audit_event_fail_safe(monkeypatch):
    monkeypatch.setattr("metavault.monitoring.audit.SessionLocal", lambda: FailingSessionCtx())
    # Should not raise
    await audit_event("lock_acquired", "user-1", {"lock_id": "x"}, actor="tester", request_id="rid")


@pytest.mark.asyncio
async def test_record_error_survives_database_outage(monkeypatch):
    monkeypatch.setattr("metavault.monitoring.errors.SessionLocal", lambda: FailingSessionCtx())
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", None)
    await record_error("storage", "acquire", "an error occurred", details={"x": 1}, stacktrace="trace", request_id="rid")


@pytest.mark.asyncio
async def test_record_error_persists_row(db_ready, monkeypatch):
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", None)
    await record_error("storage", "/api/lock", "Storage failure", request_id="rid-1", user_id="user-9")

    async with SessionLocal() as db:
        rows = (await db.execute(select(ErrorLog))).scalars().all()
    assert len(rows) == 1
    assert rows[0].component == "storage"
    assert rows[0].user_id == "user-9"
    assert rows[0].severity == "ERROR"


@pytest.mark.asyncio
async def test_slack_alert_skipped_without_webhook(monkeypatch):
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", None)
    assert await slack_alerts.send_slack_alert("boom") is False


@pytest.mark.asyncio
async def test_slack_alert_carries_request_context(monkeypatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", "https://hooks.slack.test/T000")
    monkeypatch.setattr(
        slack_alerts.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    set_request_context(request_id="rid-7", user_id="user-7")

    assert await slack_alerts.send_slack_alert("purge failed", severity="ERROR", module="jobs") is True
    text = seen[0]["text"]
    assert "[ERROR] [jobs] purge failed" in text
    assert "Request ID: rid-7" in text
    assert "User: user-7" in text


@pytest.mark.asyncio
async def test_slack_alert_delivery_failure_is_reported(monkeypatch):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", "https://hooks.slack.test/T000")
    monkeypatch.setattr(
        slack_alerts.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda r: httpx.Response(500)), **kwargs),
    )

    assert await slack_alerts.send_slack_alert("boom") is False


def test_logger_context_injection():
    # Ensure log() doesn't crash when context is missing
    log("INFO", "test message", component="test")
    log("INFO", "legacy module kwarg", component="test", module="ignored", vault_id="vault-a")


def test_json_formatter_includes_domain_fields():
    record = logging.LogRecord("metavault", logging.INFO, __file__, 1, "Lock acquired", None, None)
    record.component = "lock_coordinator"
    record.user_id = "user-1"
    record.lock_id = "abc"
    payload = json.loads(JsonFormatter().format(record))

    assert payload["component"] == "lock_coordinator"
    assert payload["user_id"] == "user-1"
    assert payload["lock_id"] == "abc"
    assert "vault_id" not in payload


@pytest.mark.asyncio
async def test_record_error_survives_alert_failure(db_ready, monkeypatch):
    async def broken_alert(**kwargs):
        raise RuntimeError("event loop closed")

    monkeypatch.setattr("metavault.monitoring.errors.send_slack_alert", broken_alert)
    # Should not raise
    await record_error("storage", "/api/unlock", "Storage failure", severity="CRITICAL")

    async with SessionLocal() as db:
        rows = (await db.execute(select(ErrorLog))).scalars().all()
    assert [r.severity for r in rows] == ["CRITICAL"]
