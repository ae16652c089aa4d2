# metavault/cloud/google_drive.py
"""
Google Drive backend (Drive API v2).

Config (settings):
    GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI, GOOGLE_SCOPES

The credential blob is the token endpoint response plus a `created` epoch
timestamp, e.g.
    {"access_token": "...", "refresh_token": "...", "token_type": "Bearer",
     "expires_in": 3599, "created": 1700000000}
"""
import posixpath
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import structlog

from metavault.cloud.base import AccountInfo, CloudBackend, RemoteFileRecord, parse_timestamp
from metavault.config import settings
from metavault.core.exceptions import RemotePathNotFound

logger = structlog.get_logger()

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveBackend(CloudBackend):
    backend_type = "googledrive"
    auth_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base = settings.GOOGLE_API_BASE_URL.rstrip("/")
        self._folder_ids = {"/": "root"}

    @property
    def client_id(self) -> Optional[str]:
        return settings.GOOGLE_CLIENT_ID

    @property
    def client_secret(self) -> Optional[str]:
        return settings.GOOGLE_CLIENT_SECRET

    @property
    def redirect_uri(self) -> Optional[str]:
        return settings.GOOGLE_REDIRECT_URI

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id or "",
            "redirect_uri": self.redirect_uri or "",
            "scope": settings.GOOGLE_SCOPES,
            "access_type": "offline",
            "state": state,
        }
        if self.force_approval_prompt:
            # Google only issues a refresh token on a fresh consent
            params["prompt"] = "consent"
        return f"{self.auth_url}?{urlencode(params)}"

    async def get_account_info(self) -> AccountInfo:
        about = await self._get_json(f"{self.api_base}/about")
        user = about.get("user") or {}
        return AccountInfo(
            email=user.get("emailAddress") or "",
            name=about.get("name") or user.get("displayName") or "",
            quota=int(about.get("quotaBytesTotal") or 0),
        )

    async def _resolve_folder_id(self, path: str) -> str:
        """Walk `path` one title at a time from the root folder."""
        normalized = "/" + path.strip("/")
        if normalized in self._folder_ids:
            return self._folder_ids[normalized]
        parent = "root"
        walked = ""
        for segment in normalized.strip("/").split("/"):
            walked = f"{walked}/{segment}"
            if walked in self._folder_ids:
                parent = self._folder_ids[walked]
                continue
            query = (
                f"'{parent}' in parents and title = '{_quote(segment)}' "
                f"and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
            )
            data = await self._get_json(f"{self.api_base}/files", params={"q": query})
            items = data.get("items") or []
            if not items:
                raise RemotePathNotFound(f"Folder not found: {walked}", backend_type=self.backend_type, status=404)
            parent = items[0]["id"]
            self._folder_ids[walked] = parent
            logger.debug("googledrive_folder_resolved", path=walked)
        return parent

    async def _fetch_page(self, path: str, cursor: Optional[str]) -> Tuple[List[RemoteFileRecord], Optional[str]]:
        folder_id = await self._resolve_folder_id(path)
        params = {"q": f"'{folder_id}' in parents and trashed = false"}
        if cursor:
            params["pageToken"] = cursor
        data = await self._get_json(f"{self.api_base}/files", params=params)
        base = "/" + path.strip("/")
        records = []
        for item in data.get("items") or []:
            name = item.get("originalFilename") or item.get("title") or ""
            records.append(RemoteFileRecord(
                size=int(item.get("fileSize") or 0),
                name=name,
                path=posixpath.join(base, name),
                modified=parse_timestamp(item.get("modifiedDate")),
                is_folder=item.get("mimeType") == FOLDER_MIME_TYPE,
                cloud=self.identifier,
            ))
        return records, data.get("nextPageToken")
