"""API client for the deployment platform."""

from __future__ import annotations

import logging
import random
import time
from typing import Any
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
    DeployAPIError,
    DeployAuthenticationError,
    DeployConfigError,
    DeployDownloadError,
    DeployInvalidResponseError,
    DeployNetworkError,
    DeployNotFoundError,
    DeployPermissionError,
    DeployRateLimitError,
    DeployUploadError,
)
from .models import LogCursor, LogLine, ReleaseManifest, ReleaseSummary
from .utils import DEFAULT_MIME_TYPE, sort_versions_desc

logger = logging.getLogger(__name__)


class DeployClient:
    """Client for interacting with the deployment API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
    ):
        """Initialize the API client.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise DeployConfigError(
                "API key not configured. Please set DEPLOY_API_KEY environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Transport errors, 429 and 5xx responses are transient.

        Args:
            exception: The httpx exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        if isinstance(exception, httpx.RequestError):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            status_code = exception.response.status_code
            return status_code == 429 or 500 <= status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # +/- 25% jitter
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _retry_delay_for(self, exception: Exception, attempt: int) -> float:
        """Delay before retrying, honouring ``Retry-After`` on 429."""
        if (
            isinstance(exception, httpx.HTTPStatusError)
            and exception.response.status_code == 429
        ):
            retry_after = exception.response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return self._calculate_retry_delay(attempt)

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> DeployAPIError:
        """Map an HTTP error status to a pydeploy exception.

        Args:
            e: The HTTP error exception

        Returns:
            The exception to raise once retries are exhausted

        Raises:
            DeployAuthenticationError: On 401
            DeployPermissionError: On 403
            DeployNotFoundError: On 404
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise DeployAuthenticationError(
                "Invalid API key or unauthorized access"
            ) from e
        elif status_code == 403:
            raise DeployPermissionError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise DeployNotFoundError("Resource not found") from e
        elif status_code == 429:
            return DeployRateLimitError("Rate limit exceeded - please try again later")

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = (
                        error_data.get("error")
                        or error_data.get("message")
                        or error_data.get("detail")
                    )
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass

        return DeployAPIError(error_msg)

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a request with retry logic and return the raw response.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful httpx response

        Raises:
            DeployAPIError: If the request fails after all retries
        """
        url = self._url(endpoint)
        client = self._get_client()

        attempt = 0
        while True:
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                cause: Exception = e
                error: DeployAPIError = self._handle_http_error(e)
            except httpx.RequestError as e:
                cause = e
                error = DeployNetworkError(f"Network error: {e}")

            if not self._should_retry(cause, attempt):
                raise error from cause
            delay = self._retry_delay_for(cause, attempt)
            logger.debug(f"{method} {endpoint} failed ({error}), retrying in {delay:.2f}s")
            time.sleep(delay)
            attempt += 1

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request and decode the JSON response.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for an empty body)

        Raises:
            DeployAPIError: If the request fails after all retries
        """
        response = self._send(method, endpoint, **kwargs)

        content_type = response.headers.get("Content-Type", "")
        if response.content and "application/json" not in content_type:
            # An HTML page instead of JSON usually means a login redirect
            if "text/html" in content_type:
                raise DeployAuthenticationError(
                    "Invalid API key - server returned HTML instead of JSON"
                )
            raise DeployInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise DeployInvalidResponseError(
                "Invalid JSON response from server - "
                "check your API key and network connection"
            ) from e

    # =========================
    # Release Operations
    # =========================

    def get_latest_release(self) -> ReleaseManifest:
        """Fetch the manifest of the current release.

        Legacy (un-categorized) manifests are normalized.

        Returns:
            ReleaseManifest of the live release (empty if never deployed)
        """
        data = self._request("GET", "/deploy")
        if not isinstance(data, dict):
            raise DeployInvalidResponseError("Malformed release information")
        try:
            return ReleaseManifest.from_dict(data)
        except ValueError as e:
            raise DeployInvalidResponseError(
                f"Malformed release information: {e}"
            ) from e

    def publish_release(self, manifest: ReleaseManifest) -> ReleaseManifest:
        """Create a new release from a manifest.

        Args:
            manifest: Checksums, versions, runtime version and description

        Returns:
            Server response (release name, runtime version, warning)
        """
        data = self._request("POST", "/deploy", json=manifest.to_dict())
        if not isinstance(data, dict):
            raise DeployInvalidResponseError("Malformed response to deploy")
        return ReleaseManifest.from_dict(data)

    def rollback(self, release_name: str = "") -> str:
        """Roll back to a release.

        Args:
            release_name: Release to roll back to (empty for the previous one)

        Returns:
            Name of the release now live
        """
        payload = {"releaseName": release_name} if release_name else {}
        data = self._request("POST", "/deploy", json=payload)
        if not isinstance(data, dict):
            raise DeployInvalidResponseError("Malformed response to rollback")
        return str(data.get("releaseName", ""))

    def get_releases(self) -> list[ReleaseSummary]:
        """List the release history, as returned by the server."""
        data = self._request("GET", "/releases")
        if not isinstance(data, list):
            raise DeployInvalidResponseError("Malformed release list")
        try:
            return [ReleaseSummary.from_dict(item) for item in data]
        except ValueError as e:
            raise DeployInvalidResponseError(f"Malformed release list: {e}") from e

    def get_runtime_versions(self) -> list[str]:
        """Available runtime versions, newest first."""
        data = self._request("GET", "/runtimeVersions")
        versions = data.get("versions") if isinstance(data, dict) else None
        if not isinstance(versions, list):
            raise DeployInvalidResponseError("Malformed runtime version list")
        return sort_versions_desc([str(v) for v in versions])

    # =========================
    # File Operations
    # =========================

    def upload_file(
        self,
        endpoint: str,
        name: str,
        content: bytes,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> str:
        """Upload the content of a file.

        Args:
            endpoint: Category endpoint ("scripts" or "hosted_files")
            name: Path relative to the category folder
            content: Raw file bytes
            mime_type: Content-Type of the upload

        Returns:
            Version token assigned by the server

        Raises:
            DeployInvalidResponseError: If no version token is returned
            DeployUploadError: If the upload is rejected
        """
        try:
            data = self._request(
                "POST",
                f"/{endpoint}/{quote(name, safe='/')}",
                content=content,
                headers={"Content-Type": mime_type},
            )
        except (DeployAuthenticationError, DeployNetworkError, DeployInvalidResponseError):
            raise
        except DeployAPIError as e:
            raise DeployUploadError(f"Upload of {name} failed: {e}") from e

        version = data.get("version") if isinstance(data, dict) else None
        if not version or not isinstance(version, str):
            raise DeployInvalidResponseError(
                f"Malformed response when trying to upload {name}"
            )
        return version

    def download_file(
        self, endpoint: str, name: str, version: str, checksum: str
    ) -> bytes:
        """Download one file of a release.

        Args:
            endpoint: Category endpoint ("scripts" or "hosted_files")
            name: Path relative to the category folder
            version: Version token of the file
            checksum: Expected checksum (sent to the server)

        Returns:
            Raw file content
        """
        try:
            response = self._send(
                "GET",
                f"/{endpoint}/{quote(name, safe='/')}",
                params={"version": version, "checksum": checksum},
            )
        except (DeployAuthenticationError, DeployNetworkError):
            raise
        except DeployAPIError as e:
            raise DeployDownloadError(f"Download of {name} failed: {e}") from e
        return response.content

    # =========================
    # Log Operations
    # =========================

    def get_logs(
        self,
        num: int,
        level: str = "INFO",
        start_time: LogCursor | None = None,
    ) -> list[LogLine]:
        """Fetch log lines, newest first.

        Args:
            num: Maximum number of lines
            level: "INFO" or "ERROR"
            start_time: Only return lines at or after this cursor

        Returns:
            List of LogLine, newest first
        """
        params: dict[str, str] = {"n": str(num), "level": level}
        if start_time is not None:
            params["startTime"] = start_time.to_json()
        data = self._request("GET", "/scriptlog", params=params)
        if data == {}:
            return []
        if not isinstance(data, list):
            raise DeployInvalidResponseError("Malformed log response")
        return [LogLine.from_dict(row) for row in data]
