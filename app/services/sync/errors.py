"""
Sync error taxonomy
Exceptions raised by the token lifecycle, the remote fetcher and the stores
"""
from typing import Optional


class SyncError(Exception):
    """Base class for every failure raised by the sync subsystem."""


class NotConnectedError(SyncError):
    """No stored credentials for the user/provider. The user must (re)do OAuth."""

    def __init__(self, user_id: str, provider: str, message: Optional[str] = None):
        self.user_id = user_id
        self.provider = provider
        super().__init__(
            message
            or f"This user has not connected {provider} yet. Please run the OAuth flow first."
        )


class TokenError(SyncError):
    """Provider token endpoint rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RefreshFailedError(TokenError):
    """Refresh token was rejected (revoked or expired). Requires re-authorization."""


class TokenExchangeError(TokenError):
    """Authorization code could not be exchanged for tokens."""


class RemoteFetchError(SyncError):
    """Network or API failure while fetching a list page or a record detail."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(SyncError):
    """Storage read/write failure."""
