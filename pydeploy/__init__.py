"""PyDeploy - Sync a project with a hosted code platform and publish releases."""

from .api import DeployClient
from .exceptions import (
    DeployAPIError,
    DeployAuthenticationError,
    DeployBatchError,
    DeployConfigError,
    DeployDiscoveryError,
    DeployDownloadError,
    DeployError,
    DeployInvalidResponseError,
    DeployMoveError,
    DeployNetworkError,
    DeployNotFoundError,
    DeployPermissionError,
    DeployPublishError,
    DeployRateLimitError,
    DeployUploadBatchError,
    DeployUploadError,
    DeployUsageError,
    NothingToUploadError,
    ProjectConfigError,
)
from .models import FileRecord, LogCursor, LogLine, ReleaseManifest
from .utils import error_string

__all__ = [
    "DeployClient",
    "DeployError",
    "DeployAPIError",
    "DeployAuthenticationError",
    "DeployBatchError",
    "DeployConfigError",
    "DeployDiscoveryError",
    "DeployDownloadError",
    "DeployInvalidResponseError",
    "DeployMoveError",
    "DeployNetworkError",
    "DeployNotFoundError",
    "DeployPermissionError",
    "DeployPublishError",
    "DeployRateLimitError",
    "DeployUploadBatchError",
    "DeployUploadError",
    "DeployUsageError",
    "NothingToUploadError",
    "ProjectConfigError",
    "FileRecord",
    "LogCursor",
    "LogLine",
    "ReleaseManifest",
    "error_string",
]
