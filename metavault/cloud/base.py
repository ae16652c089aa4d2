# metavault/cloud/base.py
"""
Base interface for remote cloud-storage backends.

Every provider (Google Drive, OneDrive, ...) implements this interface so the
rest of the service can authenticate, refresh credentials and list files the
same way regardless of provider. Provider quirks such as field names, cursor
shape and token expiry encoding stay inside each implementation.
"""
import asyncio
import json
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import aiohttp
import structlog

from metavault.config import settings
from metavault.core.exceptions import CredentialExpired, RemotePathNotFound, TransportFailure

logger = structlog.get_logger()

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class RemoteFileRecord:
    """Normalized projection of a provider file object."""
    size: int
    name: str
    path: str
    modified: int
    is_folder: bool
    cloud: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AccountInfo:
    email: str = ""
    name: str = ""
    quota: int = 0


@dataclass
class AuthResult:
    """Outcome of an authorization callback.

    A denied or invalid grant is a normal negative result, not an exception.
    `user_id` is the initiating user resolved from the correlation record; it
    is never sent back to the client.
    """
    success: bool
    vault: str
    backend_type: str
    error_message: str = ""
    access_token: str = ""
    email: str = ""
    name: str = ""
    quota: int = 0
    user_id: Optional[str] = field(default=None, repr=False)

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "vault": self.vault,
            "backendType": self.backend_type,
            "errorMessage": self.error_message,
            "accessTokenBlob": self.access_token,
            "email": self.email,
            "name": self.name,
            "quotaBytes": self.quota,
        }


PageFetcher = Callable[[Optional[str]], Awaitable[Tuple[List[RemoteFileRecord], Optional[str]]]]


class RemoteFileListing:
    """Lazy, restartable sequence of records for one folder.

    Each `async for` starts again from the first page. A page response is
    fully read and released before its records are yielded, so a consumer
    can stop at any point without leaving a connection open.
    """

    def __init__(self, fetch_page: PageFetcher):
        self._fetch_page = fetch_page

    def __aiter__(self) -> AsyncIterator[RemoteFileRecord]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RemoteFileRecord]:
        cursor: Optional[str] = None
        while True:
            records, next_cursor = await self._fetch_page(cursor)
            for record in records:
                yield record
            # Guard against providers that hand back the same cursor forever
            if not next_cursor or next_cursor == cursor:
                return
            cursor = next_cursor

    async def collect(self, limit: Optional[int] = None) -> List[RemoteFileRecord]:
        items: List[RemoteFileRecord] = []
        async for record in self:
            items.append(record)
            if limit is not None and len(items) >= limit:
                break
        return items


def parse_credential(blob: str) -> Dict[str, Any]:
    try:
        credential = json.loads(blob)
    except (TypeError, ValueError) as exc:
        raise CredentialExpired("Stored credential is not valid JSON") from exc
    if not isinstance(credential, dict) or not credential.get("access_token"):
        raise CredentialExpired("Stored credential has no access token")
    return credential


def credential_expired(credential: Mapping[str, Any], now: Optional[float] = None) -> bool:
    """True once the issue time plus the declared lifetime has elapsed.

    Unreadable timing fields count as expired so a refresh is forced.
    """
    now = time.time() if now is None else now
    try:
        created = int(credential.get("created") or 0)
        expires_in = int(credential.get("expires_in") or 0)
    except (TypeError, ValueError):
        return True
    return now > created + expires_in


def parse_timestamp(value: Optional[str]) -> int:
    """RFC 3339 timestamp to epoch seconds; 0 when missing or malformed."""
    if not value:
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return 0


class CloudBackend(ABC):
    """
    Abstract base class for cloud storage backends.

    Subclasses supply the provider endpoints (authorization URL, token URL),
    the account-info call and one page of a folder listing. The OAuth2 code
    exchange, silent refresh, HTTP timeouts and retry policy live here.
    """

    backend_type: str = ""
    token_url: str = ""

    def __init__(
        self,
        user_id: Optional[str] = None,
        identifier: str = "",
        state_store: Any = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        force_approval_prompt: Optional[bool] = None,
    ):
        """
        Args:
            user_id: user on whose behalf the backend acts
            identifier: vault identifier stamped on every listed record
            state_store: OAuthStateStore used to correlate authorization callbacks
            session: externally managed aiohttp session (tests inject fakes here)
        """
        self.user_id = user_id
        self.identifier = identifier
        self.state_store = state_store
        self._external_session = session
        self.timeout = timeout if timeout is not None else settings.CLOUD_HTTP_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.CLOUD_MAX_RETRIES
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else settings.CLOUD_RETRY_BASE_DELAY
        self.force_approval_prompt = (
            force_approval_prompt if force_approval_prompt is not None else settings.OAUTH_FORCE_APPROVAL_PROMPT
        )
        self._credential: Optional[Dict[str, Any]] = None
        self.refresh_count = 0

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def client_id(self) -> Optional[str]:
        ...

    @property
    @abstractmethod
    def client_secret(self) -> Optional[str]:
        ...

    @property
    @abstractmethod
    def redirect_uri(self) -> Optional[str]:
        ...

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """Provider consent URL carrying `state` as the correlation nonce."""

    @abstractmethod
    async def get_account_info(self) -> AccountInfo:
        """Normalized {email, name, quota} of the authenticated account."""

    @abstractmethod
    async def _fetch_page(self, path: str, cursor: Optional[str]) -> Tuple[List[RemoteFileRecord], Optional[str]]:
        """Fetch one page of `path`; return its records and the next cursor."""

    def refresh_request_extra(self) -> Dict[str, str]:
        return {}

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def build_authorization_url(self, vault_id: str) -> str:
        if self.state_store is None or not self.user_id:
            raise RuntimeError("build_authorization_url requires a user and a state store")
        nonce = await self.state_store.issue(self.user_id, vault_id, self.backend_type)
        logger.info("oauth_authorization_started", backend=self.backend_type, vault=vault_id)
        return self.authorization_url(nonce)

    async def complete_authorization(self, params: Mapping[str, Any]) -> AuthResult:
        """Exchange the provider's authorization code for a credential blob.

        Provider errors, a missing/unknown state and rejected grants produce a
        negative AuthResult. Network and provider-side failures raise
        TransportFailure.
        """
        record = None
        nonce = params.get("state")
        if nonce and self.state_store is not None:
            record = await self.state_store.consume(nonce)
        if record is not None and (
            record.backend_type != self.backend_type or (self.user_id and record.user_id != self.user_id)
        ):
            logger.warning("oauth_state_mismatch", backend=self.backend_type)
            record = None

        result = AuthResult(
            success=False,
            vault=record.vault_id if record else "",
            backend_type=self.backend_type,
            user_id=record.user_id if record else None,
        )

        if params.get("error"):
            result.error_message = params.get("error_description") or params.get("error")
            logger.info("oauth_authorization_denied", backend=self.backend_type, error=params.get("error"))
            return result
        if record is None:
            result.error_message = "Invalid or expired authorization state"
            return result
        code = params.get("code")
        if not code:
            result.error_message = "Missing authorization code"
            return result

        status, payload = await self._token_request({
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        })
        if status in (400, 401) or not payload.get("access_token"):
            result.error_message = payload.get("error_description") or payload.get("error") or "Authorization rejected"
            logger.info("oauth_grant_rejected", backend=self.backend_type, status=status)
            return result

        credential = dict(payload)
        credential["created"] = int(time.time())
        self._credential = credential
        info = await self.get_account_info()

        result.success = True
        result.access_token = json.dumps(credential)
        result.email = info.email
        result.name = info.name
        result.quota = info.quota
        logger.info("oauth_authorization_completed", backend=self.backend_type, vault=result.vault)
        return result

    # ------------------------------------------------------------------
    # Credential lifecycle
    # ------------------------------------------------------------------

    async def load_credential(self, blob: str) -> Optional[str]:
        """Hydrate the backend from a stored blob.

        Returns the refreshed blob when the stored credential had expired, so
        the caller can persist it before making further calls; None otherwise.
        """
        credential = parse_credential(blob)
        self._credential = credential
        if not credential_expired(credential):
            return None
        refreshed = await self._refresh(credential)
        self._credential = refreshed
        self.refresh_count += 1
        logger.info("oauth_token_refreshed", backend=self.backend_type, vault=self.identifier)
        return json.dumps(refreshed)

    async def _refresh(self, credential: Dict[str, Any]) -> Dict[str, Any]:
        refresh_token = credential.get("refresh_token")
        if not refresh_token:
            raise CredentialExpired("Credential has no refresh token", backend_type=self.backend_type)
        data = {
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
        }
        data.update(self.refresh_request_extra())
        status, payload = await self._token_request(data)
        if status in (400, 401) or not payload.get("access_token"):
            logger.warning("oauth_refresh_rejected", backend=self.backend_type, status=status, error=payload.get("error"))
            raise CredentialExpired(
                payload.get("error_description") or payload.get("error") or "Refresh rejected",
                backend_type=self.backend_type,
                status=status,
            )
        refreshed = dict(credential)
        refreshed.update(payload)
        # Providers may omit the refresh token on refresh; keep the one we have
        refreshed["refresh_token"] = payload.get("refresh_token") or refresh_token
        refreshed["created"] = int(time.time())
        return refreshed

    def get_auth_headers(self) -> Dict[str, str]:
        if not self._credential or not self._credential.get("access_token"):
            raise CredentialExpired("No credential loaded", backend_type=self.backend_type)
        token_type = self._credential.get("token_type") or "Bearer"
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        return {"Authorization": f"{token_type} {self._credential['access_token']}"}

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_files(self, path: str = "/") -> RemoteFileListing:
        """Entries directly under `path`, excluding trashed ones, across all pages."""
        async def fetch(cursor: Optional[str]):
            records, next_cursor = await self._fetch_page(path, cursor)
            logger.debug("listing_page_fetched", backend=self.backend_type, path=path, count=len(records))
            return records, next_cursor
        return RemoteFileListing(fetch)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def _token_request(self, data: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """POST to the token endpoint. 400/401 are returned, not raised."""
        session = self._external_session or self._new_session()
        try:
            async with session.post(self.token_url, data=data, headers={"Accept": "application/json"}) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("oauth_token_transport_error", backend=self.backend_type, error=str(exc))
            raise TransportFailure(f"Token endpoint unreachable: {exc}", backend_type=self.backend_type) from exc
        finally:
            if self._external_session is None:
                await session.close()

        payload = _decode(text)
        if status >= 500 or status == 429:
            logger.error("oauth_token_endpoint_error", backend=self.backend_type, status=status)
            raise TransportFailure(f"Token endpoint returned {status}", backend_type=self.backend_type, status=status)
        if status >= 400 and status not in (400, 401):
            raise TransportFailure(f"Token endpoint returned {status}", backend_type=self.backend_type, status=status)
        return status, payload

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Authenticated GET with bounded retries on transient failures."""
        attempt = 0
        while True:
            try:
                return await self._get_json_once(url, params)
            except TransportFailure as exc:
                retryable = exc.status is None or exc.status in RETRYABLE_STATUSES
                if not retryable or attempt >= self.max_retries:
                    raise
                delay = self.retry_base_delay * (2 ** attempt)
                delay += delay * random.uniform(0, 0.3)
                logger.warning("cloud_request_retry", backend=self.backend_type, attempt=attempt + 1, delay=round(delay, 2), status=exc.status)
                attempt += 1
                await asyncio.sleep(delay)

    async def _get_json_once(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {**self.get_auth_headers(), "Accept": "application/json"}
        session = self._external_session or self._new_session()
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportFailure(f"GET {url} failed: {exc}", backend_type=self.backend_type) from exc
        finally:
            if self._external_session is None:
                await session.close()

        if status == 401:
            raise CredentialExpired("Provider rejected the access token", backend_type=self.backend_type, status=status)
        if status == 404:
            raise RemotePathNotFound(f"Not found: {url}", backend_type=self.backend_type, status=status)
        if status >= 400:
            logger.error("cloud_request_failed", backend=self.backend_type, status=status)
            raise TransportFailure(f"GET {url} returned {status}", backend_type=self.backend_type, status=status)
        return _decode(text)


def _decode(text: str) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        payload = json.loads(text)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
