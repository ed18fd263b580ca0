"""Exceptions raised by pydeploy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import ReleaseManifest


class DeployError(Exception):
    """Base class for all pydeploy errors."""


class DeployAPIError(DeployError):
    """Base exception for remote API errors."""


class DeployAuthenticationError(DeployAPIError):
    """Raised when the API key is rejected."""


class DeployPermissionError(DeployAPIError):
    """Raised when access to a resource is forbidden."""


class DeployNotFoundError(DeployAPIError):
    """Raised when a remote resource does not exist."""


class DeployRateLimitError(DeployAPIError):
    """Raised when the server rate limit is exceeded."""


class DeployNetworkError(DeployAPIError):
    """Raised on transport failures (connection refused, DNS, timeouts)."""


class DeployInvalidResponseError(DeployAPIError):
    """Raised when the server returns a malformed response."""


class DeployUploadError(DeployAPIError):
    """Raised when a single file upload fails."""


class DeployDownloadError(DeployAPIError):
    """Raised when a single file download fails."""


class DeployPublishError(DeployAPIError):
    """Raised when publishing a new release fails.

    In develop mode ``fallback`` holds the previous release with the
    freshly computed checksums adopted, so the next cycle does not upload
    the same files again.
    """

    def __init__(self, message: str, fallback: Optional[ReleaseManifest] = None):
        super().__init__(message)
        self.fallback = fallback


class DeployConfigError(DeployError):
    """Raised when the client is not configured (e.g. missing API key)."""


class ProjectConfigError(DeployError):
    """Raised when the project config file cannot be parsed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class DeployDiscoveryError(DeployError):
    """Raised on local file-system failures while collecting files."""


class DeployUsageError(DeployError):
    """Raised on invalid command options."""


class NothingToUploadError(DeployError):
    """Raised when neither category contains any file to deploy.

    This is a terminal condition: retrying cannot change the outcome.
    """


class DeployBatchError(DeployError):
    """Aggregates every failure of a concurrent batch operation."""

    def __init__(self, message: str, errors: list[Exception]):
        super().__init__(message)
        self.errors = errors

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "\n".join(str(e) for e in self.errors)
        return f"{base}\n{details}"


class DeployUploadBatchError(DeployBatchError):
    """Raised when at least one upload of a category failed.

    ``checksums`` still holds the checksums computed for the category.
    """

    def __init__(
        self,
        message: str,
        errors: list[Exception],
        checksums: Optional[dict[str, str]] = None,
    ):
        super().__init__(message, errors)
        self.checksums = checksums or {}


class DeployMoveError(DeployBatchError):
    """Raised when moving downloaded files into the project failed.

    ``partial`` is True when some files were moved before the failure,
    meaning the project tree may hold a mix of old and new contents.
    """

    def __init__(self, message: str, errors: list[Exception], partial: bool):
        super().__init__(message, errors)
        self.partial = partial
