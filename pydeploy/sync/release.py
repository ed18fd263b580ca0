"""Builds and publishes releases."""

import logging
from pathlib import Path
from typing import Optional

from ..api import DeployClient
from ..config import ProjectConfig
from ..exceptions import (
    DeployAPIError,
    DeployError,
    DeployPublishError,
    NothingToUploadError,
)
from ..models import CATEGORIES, ReleaseManifest
from ..output import OutputFormatter
from ..utils import MAX_OPEN_FILES
from .uploader import SyncResult, SyncSession, Uploader

logger = logging.getLogger(__name__)


class ReleaseCoordinator:
    """Runs one deploy cycle: upload the changes, then publish a release.

    Examples:
        >>> coordinator = ReleaseCoordinator(client, Path("/project"))
        >>> manifest = coordinator.deploy("1.6.0")
        >>> manifest.release_name
        'v3'
    """

    def __init__(
        self,
        client: DeployClient,
        project_root: Path,
        output: Optional[OutputFormatter] = None,
        verbose: bool = False,
        force: bool = False,
        description: str = "",
        max_workers: int = MAX_OPEN_FILES,
    ):
        """Initialize the coordinator.

        Args:
            client: Deploy API client
            project_root: Directory holding the cloud/ and public/ folders
            output: Output formatter for status messages
            verbose: List the files being uploaded
            force: Upload every file regardless of checksums
            description: Release notes attached to the new release
            max_workers: Maximum number of concurrent uploads
        """
        self.client = client
        self.project_root = Path(project_root)
        self.output = output or OutputFormatter()
        self.verbose = verbose
        self.force = force
        self.description = description
        self.max_workers = max_workers

    def resolve_runtime_version(self) -> str:
        """Pick the latest available runtime version and remember it.

        Raises:
            DeployError: If the server offers no runtime version
            ProjectConfigError: If the project config is malformed
        """
        versions = self.client.get_runtime_versions()
        if not versions:
            raise DeployError("No runtime version is available.")
        latest = versions[0]

        project_config = ProjectConfig.load(self.project_root)
        project_config.runtime_version = latest
        project_config.store(self.project_root)
        logger.debug(f"Using latest runtime version {latest}")
        return latest

    def deploy(
        self,
        runtime_version: str = "",
        previous: Optional[ReleaseManifest] = None,
        for_develop: bool = False,
    ) -> ReleaseManifest:
        """Upload the changed files and publish a release if anything changed.

        Args:
            runtime_version: Runtime version to deploy with (empty for latest)
            previous: Manifest of the live release (fetched when None)
            for_develop: Running inside the develop loop

        Returns:
            The published manifest, or ``previous`` when nothing changed

        Raises:
            NothingToUploadError: If neither category holds any file
            DeployPublishError: If publishing the release failed
            DeployUploadBatchError: If some uploads failed
        """
        if not runtime_version:
            self.output.warning(
                "Runtime version not set, setting it to latest available runtime version"
            )
            runtime_version = self.resolve_runtime_version()

        if self.verbose:
            self.output.info("Uploading source files")
        if previous is None:
            previous = self.client.get_latest_release()

        results: dict[str, SyncResult] = {}
        uploader = Uploader(
            self.client,
            self.output,
            verbose=self.verbose,
            force=self.force,
            show_progress=not for_develop,
        )
        for category in CATEGORIES:
            session = SyncSession(
                project_root=self.project_root,
                category=category,
                previous_checksums=previous.checksums.get(category.name, {}),
                previous_versions=previous.versions.get(category.name, {}),
                force=self.force,
                max_workers=self.max_workers,
            )
            results[category.name] = uploader.sync(session)

        if all(not result.checksums for result in results.values()):
            raise NothingToUploadError("No files to upload")

        if self.verbose:
            self.output.info("Finished uploading files")

        manifest = ReleaseManifest(
            checksums={name: r.checksums for name, r in results.items()},
            versions={name: r.versions for name, r in results.items()},
            runtime_version=runtime_version,
            description=self.description,
        )

        if manifest.same_content(previous):
            if self.verbose:
                self.output.info("Not creating a release because no files have changed")
            return previous

        try:
            response = self.client.publish_release(manifest)
        except DeployAPIError as e:
            fallback = None
            if for_develop:
                # Keep the old release but remember the new checksums, so the
                # next cycle does not upload the same files again.
                fallback = previous.copy()
                fallback.checksums = {
                    name: dict(checksums) for name, checksums in manifest.checksums.items()
                }
            raise DeployPublishError(
                f"Failed to create a new release: {e}", fallback=fallback
            ) from e

        published = manifest.copy()
        published.release_name = response.release_name
        published.runtime_version = response.runtime_version or runtime_version
        published.warning = response.warning

        if for_develop:
            self.output.info("Your changes are now live.")
        else:
            if response.warning:
                self.output.warning(response.warning)
            self.output.info(
                f"New release is named {published.release_name} "
                f"(using runtime v{published.runtime_version})"
            )
        logger.debug(f"Published release {published.release_name}")
        return published
