"""
Cloud storage abstraction.

Uniform interface over remote storage providers:
- Google Drive
- OneDrive
"""

from metavault.cloud.base import AuthResult, CloudBackend, RemoteFileListing, RemoteFileRecord
from metavault.cloud.registry import get_backend, list_backends, register_backend

__all__ = [
    "AuthResult",
    "CloudBackend",
    "RemoteFileListing",
    "RemoteFileRecord",
    "get_backend",
    "list_backends",
    "register_backend",
]
