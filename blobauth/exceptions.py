"""
Exceptions for blobauth.

Failures fall into four kinds that callers can tell apart with ``except``:

- ``ConfigurationError``: bad key, missing credential, bad expiry. Fatal.
- ``TransportError``: the request never got a response.
- ``RequestRejectedError``: the service answered with a 4xx/5xx status.
- ``LocalResourceError``: the upload body could not be opened or read.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from blobauth.storage.errors import Fault


class BlobAuthError(Exception):
    """Base exception for blobauth errors."""

    def __init__(self, message: str, error_code: str = "BlobAuthError"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigurationError(BlobAuthError):
    """Raised for unusable configuration. Never retried."""

    def __init__(self, message: str, error_code: str = "InvalidConfiguration"):
        super().__init__(message, error_code)


class InvalidAccountKeyError(ConfigurationError):
    """Raised when the account key is not valid base64."""

    def __init__(self, message: str = "Account key is not valid base64"):
        super().__init__(message, "InvalidAccountKey")


class MissingCredentialError(ConfigurationError):
    """Raised when a SAS is requested without a shared key credential."""

    def __init__(self, message: str = "cannot sign SAS query without Shared Key Credential"):
        super().__init__(message, "MissingCredential")


class InvalidExpiryError(ConfigurationError):
    """Raised when a SAS validity window is empty or negative."""

    def __init__(self, days: int):
        self.days = days
        super().__init__(
            f"SAS expiration must be a positive number of days, got {days}",
            "InvalidExpiry",
        )


class TransportError(BlobAuthError):
    """Raised when the request could not be delivered."""

    def __init__(self, message: str):
        super().__init__(message, "TransportError")


class RequestRejectedError(BlobAuthError):
    """Raised when the service rejects a request with a 4xx/5xx status."""

    def __init__(self, fault: "Fault"):
        self.fault = fault
        super().__init__(str(fault), fault.error_code or "RequestRejected")

    @property
    def status_code(self) -> int:
        return self.fault.status_code


class LocalResourceError(BlobAuthError):
    """Raised when a local resource backing an upload fails."""

    def __init__(self, operation: str, path: Optional[str], reason: str):
        self.operation = operation
        self.path = path
        target = f" {path}" if path else ""
        super().__init__(f"{operation}{target}: {reason}", "LocalResourceError")
