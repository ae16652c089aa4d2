# metavault/cloud/onedrive.py
"""
OneDrive backend using Microsoft Graph with delegated (per-user) consent.

Remote paths are resolved against the signed-in user's drive root:
    /            -> /me/drive/root/children
    /Docs/2024   -> /me/drive/root:/Docs/2024:/children

Graph pages carry the full URL of the next page in `@odata.nextLink`.
"""
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from metavault.cloud.base import AccountInfo, CloudBackend, RemoteFileRecord, parse_timestamp
from metavault.config import settings


class OneDriveBackend(CloudBackend):
    backend_type = "onedrive"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = settings.MS_GRAPH_BASE_URL.rstrip("/")
        self.login_base = f"https://login.microsoftonline.com/{settings.MS_TENANT_ID or 'common'}/oauth2/v2.0"
        self.token_url = f"{self.login_base}/token"

    @property
    def client_id(self) -> Optional[str]:
        return settings.MS_CLIENT_ID

    @property
    def client_secret(self) -> Optional[str]:
        return settings.MS_CLIENT_SECRET

    @property
    def redirect_uri(self) -> Optional[str]:
        return settings.MS_REDIRECT_URI

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id or "",
            "response_type": "code",
            "redirect_uri": self.redirect_uri or "",
            "response_mode": "query",
            "scope": settings.MS_SCOPES,
            "state": state,
        }
        if self.force_approval_prompt:
            params["prompt"] = "consent"
        return f"{self.login_base}/authorize?{urlencode(params)}"

    def refresh_request_extra(self) -> Dict[str, str]:
        # The v2 endpoint requires the scopes again on refresh
        return {"scope": settings.MS_SCOPES}

    async def get_account_info(self) -> AccountInfo:
        me = await self._get_json(f"{self.base_url}/me")
        drive = await self._get_json(f"{self.base_url}/me/drive")
        quota = drive.get("quota") or {}
        return AccountInfo(
            email=me.get("mail") or me.get("userPrincipalName") or "",
            name=me.get("displayName") or "",
            quota=int(quota.get("total") or 0),
        )

    def _children_url(self, path: str) -> str:
        rp = path.strip("/")
        if not rp:
            return f"{self.base_url}/me/drive/root/children"
        return f"{self.base_url}/me/drive/root:/{quote(rp)}:/children"

    async def _fetch_page(self, path: str, cursor: Optional[str]) -> Tuple[List[RemoteFileRecord], Optional[str]]:
        url = cursor or self._children_url(path)
        data = await self._get_json(url)
        base = "/" + path.strip("/")
        records = []
        for item in data.get("value", []):
            if "deleted" in item:
                continue
            name = item.get("name") or ""
            records.append(RemoteFileRecord(
                size=int(item.get("size") or 0),
                name=name,
                path=f"{base.rstrip('/')}/{name}",
                modified=parse_timestamp(item.get("lastModifiedDateTime")),
                is_folder="folder" in item,
                cloud=self.identifier,
            ))
        return records, data.get("@odata.nextLink")
