"""
Failure taxonomy for provisioning and supervision.

Components convert low-level network and filesystem errors into one of these
kinds at their boundary. Only UnsupportedPlatformError is allowed to abort a
whole supervision request.
"""

from __future__ import annotations


UNSUPPORTED = "unsupported"
NETWORK_UNAVAILABLE = "network_unavailable"
DOWNLOAD_ERROR = "download_error"
METADATA_CORRUPT = "metadata_corrupt"
PERMISSION_DENIED = "permission_denied"


class SupervisorError(Exception):
    """
    Base exception for supervisor failures.

    Attributes:
        message: Human-readable error message
        retryable: Whether this error can be retried
        remediation: Suggested fix for the error
    """
    kind = "error"

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        remediation: str | None = None,
    ):
        self.message = message
        self.retryable = retryable
        self.remediation = remediation
        super().__init__(message)


class UnsupportedPlatformError(SupervisorError):
    """Host OS/architecture is outside the support matrix. Fatal for the run."""
    kind = UNSUPPORTED


class NetworkUnavailableError(SupervisorError):
    """Release lookup or download request failed before any bytes arrived."""
    kind = NETWORK_UNAVAILABLE

    def __init__(self, message: str, retryable: bool = True, remediation: str | None = None):
        super().__init__(message, retryable=retryable, remediation=remediation)


class DownloadError(SupervisorError):
    """The artifact stream or the file write failed mid-transfer."""
    kind = DOWNLOAD_ERROR


class MetadataCorruptError(SupervisorError):
    """The metadata sidecar could not be parsed."""
    kind = METADATA_CORRUPT


class PermissionDeniedError(SupervisorError):
    """chmod, directory creation, or process spawn was refused."""
    kind = PERMISSION_DENIED
