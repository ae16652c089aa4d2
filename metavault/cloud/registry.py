# metavault/cloud/registry.py
"""
Backend registry.

Static routing from a backend-type tag to the CloudBackend implementation.
"""
from typing import Any, Dict, List

from metavault.cloud.base import CloudBackend
from metavault.cloud.google_drive import GoogleDriveBackend
from metavault.cloud.onedrive import OneDriveBackend
from metavault.core.exceptions import UnknownBackend
from metavault.monitoring.logger import log


# Registry of available backends
BACKEND_REGISTRY: Dict[str, type] = {
    GoogleDriveBackend.backend_type: GoogleDriveBackend,
    OneDriveBackend.backend_type: OneDriveBackend,
}


def _normalize(backend_type: str) -> str:
    return (backend_type or "").lower().strip()


def register_backend(name: str, backend_class: type) -> None:
    """
    Register a new cloud backend.

    Args:
        name: Backend type tag (e.g., "dropbox")
        backend_class: Class implementing CloudBackend

    Raises:
        ValueError: If backend_class doesn't implement CloudBackend
    """
    if not issubclass(backend_class, CloudBackend):
        raise ValueError(
            f"Backend class must inherit from CloudBackend, "
            f"got {backend_class}"
        )

    name = _normalize(name)
    BACKEND_REGISTRY[name] = backend_class
    log("INFO", f"Registered cloud backend: {name}", module="registry")


def get_backend_class(backend_type: str) -> type:
    name = _normalize(backend_type)
    backend_class = BACKEND_REGISTRY.get(name)
    if not backend_class:
        raise UnknownBackend(
            f"Unknown cloud backend: '{name}'. "
            f"Available backends: {list(BACKEND_REGISTRY.keys())}"
        )
    return backend_class


def get_backend(backend_type: str, **kwargs: Any) -> CloudBackend:
    """
    Instantiate the backend registered under `backend_type`.

    Keyword arguments are passed to the backend constructor (user_id,
    identifier, state_store, session, ...).

    Raises:
        UnknownBackend: If no backend is registered under that tag
    """
    return get_backend_class(backend_type)(**kwargs)


def list_backends() -> List[str]:
    """
    List all registered backend type tags.
    """
    return list(BACKEND_REGISTRY.keys())
