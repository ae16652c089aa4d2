"""
End-to-end tests for the HTTP surface: locks, versions, cloud authorization and account teardown.
"""
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from metavault.api.deps import get_backend_factory, get_current_user_id, get_lock_coordinator
from metavault.cloud.registry import get_backend
from metavault.core.exceptions import NotBound, StorageFailure
from metavault.core.lock_coordinator import LockCoordinator
from metavault.core.token_store import TokenStore
from metavault.db.models import ErrorLog
from metavault.db.session import SessionLocal
from metavault.main import app
from tests.fakes import FakeResp, FakeSession


@pytest_asyncio.fixture
async def client(db_ready):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login(user_id):
    app.dependency_overrides[get_current_user_id] = lambda: user_id
    return user_id


@pytest.mark.asyncio
async def test_requests_without_session_are_rejected(client):
    resp = await client.get("/api/locks")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_lock_unlock_scenario(client, login):
    resp = await client.post("/api/lock", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert resp.status_code == 200
    lock_id = resp.json()["lockId"]

    resp = await client.get("/api/locks")
    assert resp.status_code == 200
    entries = resp.json()
    assert len(entries) == 1
    assert entries[0]["lockId"] == lock_id
    assert entries[0]["endTime"] is None
    assert entries[0]["originatingAddress"] == "203.0.113.9"
    assert isinstance(entries[0]["startTime"], int)

    resp = await client.post("/api/lock")
    assert resp.status_code == 409
    assert resp.json()["error"] == "Locked"

    resp = await client.post(f"/api/unlock/{lock_id}")
    assert resp.status_code == 200
    assert resp.json() == {"status": "unlocked"}

    resp = await client.post(f"/api/unlock/{lock_id}")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid Request"

    entries = (await client.get("/api/locks")).json()
    assert entries[0]["endTime"] is not None
    assert entries[0]["endTime"] >= entries[0]["startTime"]


@pytest.mark.asyncio
async def test_unlock_storage_failure_reports_database_error(client, login):
    class BrokenCoordinator(LockCoordinator):
        async def release(self, user_id, token):
            raise StorageFailure("disk full", user_id=user_id)

    app.dependency_overrides[get_lock_coordinator] = lambda: BrokenCoordinator()

    resp = await client.post("/api/unlock/whatever")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Database Error"
    async with SessionLocal() as db:
        errors = (await db.execute(select(ErrorLog))).scalars().all()
    assert [e.component for e in errors] == ["storage"]
    assert errors[0].function == "/api/unlock/whatever"
    assert errors[0].user_id == login


@pytest.mark.asyncio
async def test_versions_listing(client, login):
    assert (await client.get("/api/versions")).json() == []
    assert (await client.get("/api/versions", params={"limit": -1})).status_code == 422
    assert (await client.get("/api/versions", params={"limit": 0})).json() == []


@pytest.mark.asyncio
async def test_denied_authorization_stores_nothing(client, login):
    resp = await client.get("/api/cloud/googledrive/authorize", params={"vault": "vault-g"})
    assert resp.status_code == 200
    state = parse_qs(urlparse(resp.json()["authorizeUrl"]).query)["state"][0]

    resp = await client.get(
        "/api/cloud/googledrive/callback",
        params={"error": "access_denied", "state": state},
    )

    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False
    assert body["vault"] == "vault-g"
    assert body["backendType"] == "googledrive"
    assert body["errorMessage"] == "access_denied"
    assert body["accessTokenBlob"] == ""
    with pytest.raises(NotBound):
        await TokenStore().load(login, "vault-g")


@pytest.mark.asyncio
async def test_successful_authorization_binds_vault(client, login):
    def provider(method, url, params, data, headers):
        if method == "POST":
            return FakeResp(200, {"access_token": "granted", "refresh_token": "r", "expires_in": 3600})
        return FakeResp(200, {"user": {"emailAddress": "ada@example.com"}, "name": "Ada", "quotaBytesTotal": "100"})

    session = FakeSession(provider)
    app.dependency_overrides[get_backend_factory] = lambda: (
        lambda backend_type, **kwargs: get_backend(backend_type, session=session, **kwargs)
    )

    resp = await client.get("/api/cloud/googledrive/authorize", params={"vault": "vault-g"})
    state = parse_qs(urlparse(resp.json()["authorizeUrl"]).query)["state"][0]
    resp = await client.get("/api/cloud/googledrive/callback", params={"code": "c0de", "state": state})

    body = resp.json()
    assert body["success"] is True
    assert body["email"] == "ada@example.com"
    assert body["quotaBytes"] == 100
    assert await TokenStore().load(login, "vault-g") == body["accessTokenBlob"]


@pytest.mark.asyncio
async def test_unknown_backend_is_not_found(client, login):
    resp = await client.get("/api/cloud/dropbox/authorize", params={"vault": "v"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_account_endpoint(client, login):
    await client.post("/api/lock")
    await TokenStore().save(login, "vault-g", '{"access_token": "x"}', backend_type="googledrive")

    resp = await client.post("/api/delete_account")

    assert resp.status_code == 200
    assert resp.json() == {"status": "deleted"}
    with pytest.raises(NotBound):
        await TokenStore().load(login, "vault-g")
    resp = await client.post("/api/delete_account")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_health_endpoints(client):
    resp = await client.get("/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    resp = await client.get("/admin/health/deep")
    assert resp.status_code == 200
    body = resp.json()
    assert body["database"]["healthy"] is True
    assert body["cloud_backends"]["total"] == 2
    assert body["status"] == "ready"
