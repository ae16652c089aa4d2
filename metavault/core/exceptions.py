# metavault/core/exceptions.py
"""
Error taxonomy shared by the lock manager, the token store and the cloud
backends.

API handlers in `metavault.main` map each class to an HTTP status without
echoing the message back to the client.
"""
from typing import Optional


class MetavaultError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str = "", user_id: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.user_id = user_id


class AlreadyLocked(MetavaultError):
    """The user already holds an open metafile lock. Retry later."""


class InvalidToken(MetavaultError):
    """The supplied lock token is not the user's current lock token."""


class UserNotFound(MetavaultError):
    """No user record exists for the given identifier."""


class NotBound(MetavaultError):
    """No credential is stored for the (user, vault) pair."""


class UnknownBackend(MetavaultError):
    """No cloud backend is registered under the given type tag."""


class StorageFailure(MetavaultError):
    """The transactional store failed; the transaction was rolled back."""


class CloudError(MetavaultError):
    """Base class for errors raised while talking to a remote provider."""

    def __init__(self, message: str = "", backend_type: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.backend_type = backend_type
        self.status = status


class CredentialExpired(CloudError):
    """The provider rejected the refresh exchange; the user must re-authorize."""


class TransportFailure(CloudError):
    """Network error, timeout or provider-side failure. Eligible for retry."""


class RemotePathNotFound(CloudError):
    """The requested folder does not exist on the remote provider."""
