# metavault/config.py
"""
Configuration management using Pydantic Settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"
    # Signs the session cookie carrying the logged-in user id
    SESSION_SECRET: str = "change-me"
    # Root of per-user metafile directories, removed on account teardown
    USER_DATA_DIR: str = "./data/users"
    SLACK_WEBHOOK_URL: Optional[str] = None

    # Metafile locks
    LOCK_HISTORY_LIMIT: int = 5

    # Remote cloud HTTP behaviour
    CLOUD_HTTP_TIMEOUT_SECONDS: float = 30.0
    CLOUD_MAX_RETRIES: int = 3
    CLOUD_RETRY_BASE_DELAY: float = 0.5

    # OAuth correlation records
    OAUTH_STATE_TTL_SECONDS: int = 600
    OAUTH_STATE_PURGE_MINUTES: int = 15
    # Always ask the user to consent again so the provider issues a refresh token
    OAUTH_FORCE_APPROVAL_PROMPT: bool = True

    # Google Drive
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: Optional[str] = None
    GOOGLE_SCOPES: str = "https://www.googleapis.com/auth/drive"
    GOOGLE_API_BASE_URL: str = "https://www.googleapis.com/drive/v2"

    # Microsoft Graph / OneDrive (delegated user consent)
    MS_CLIENT_ID: Optional[str] = None
    MS_CLIENT_SECRET: Optional[str] = None
    MS_TENANT_ID: str = "common"
    MS_REDIRECT_URI: Optional[str] = None
    MS_SCOPES: str = "offline_access Files.ReadWrite User.Read"
    MS_GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"

settings = Settings()
