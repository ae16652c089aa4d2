import json

import pytest

from metavault.cloud.service import CloudService
from metavault.core.exceptions import NotBound, UnknownBackend
from metavault.core.token_store import TokenStore
from tests.fakes import FakeResp, FakeSession, google_item, token_blob


@pytest.mark.asyncio
async def test_load_unbound_pair_raises(user_id):
    with pytest.raises(NotBound):
        await TokenStore().load(user_id, "missing-vault")


@pytest.mark.asyncio
async def test_save_overwrites_existing_binding(user_id):
    store = TokenStore()
    await store.save(user_id, "vault-a", "blob-1", backend_type="googledrive")
    await store.save(user_id, "vault-a", "blob-2")

    assert await store.load(user_id, "vault-a") == "blob-2"
    bindings = await store.list_for_user(user_id)
    assert len(bindings) == 1
    # Backend type survives an update that does not repeat it
    assert bindings[0].backend_type == "googledrive"


@pytest.mark.asyncio
async def test_bindings_are_independent_per_vault_and_user(user_id, other_user_id):
    store = TokenStore()
    await store.save(user_id, "gdrive", "g-blob", backend_type="googledrive")
    await store.save(user_id, "onedrive", "o-blob", backend_type="onedrive")
    await store.save(other_user_id, "gdrive", "other-blob", backend_type="googledrive")

    assert await store.load(user_id, "gdrive") == "g-blob"
    assert await store.load(user_id, "onedrive") == "o-blob"
    assert await store.load(other_user_id, "gdrive") == "other-blob"

    assert await store.delete(user_id, "gdrive") is True
    with pytest.raises(NotBound):
        await store.load(user_id, "gdrive")
    assert await store.load(other_user_id, "gdrive") == "other-blob"


@pytest.mark.asyncio
async def test_cloud_service_persists_refreshed_credential(user_id):
    def handler(method, url, params, data, headers):
        if method == "POST":
            return FakeResp(200, {"access_token": "new-token", "expires_in": 3600})
        assert headers["Authorization"] == "Bearer new-token"
        return FakeResp(200, {"items": [google_item("a.txt")]})

    store = TokenStore()
    await store.save(user_id, "vault-g", token_blob(created=0), backend_type="googledrive")
    service = CloudService(token_store=store, session=FakeSession(handler))

    listing = await service.list_files(user_id, "vault-g", "/")
    records = await listing.collect()

    assert [r.cloud for r in records] == ["vault-g"]
    stored = json.loads(await store.load(user_id, "vault-g"))
    assert stored["access_token"] == "new-token"
    assert stored["refresh_token"] == "refresh-1"


@pytest.mark.asyncio
async def test_cloud_service_leaves_fresh_credential_alone(user_id):
    blob = token_blob(created=4_000_000_000)
    store = TokenStore()
    await store.save(user_id, "vault-o", blob, backend_type="onedrive")
    session = FakeSession(lambda *a: FakeResp(500))

    backend = await CloudService(token_store=store, session=session).open_backend(user_id, "vault-o")

    assert backend.backend_type == "onedrive"
    assert session.calls == []
    assert await store.load(user_id, "vault-o") == blob


@pytest.mark.asyncio
async def test_cloud_service_unknown_backend(user_id):
    store = TokenStore()
    await store.save(user_id, "vault-x", token_blob(), backend_type="dropbox")

    with pytest.raises(UnknownBackend):
        await CloudService(token_store=store).open_backend(user_id, "vault-x")
