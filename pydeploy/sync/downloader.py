"""Downloads the files of a release into the project."""

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Optional

from ..api import DeployClient
from ..exceptions import (
    DeployBatchError,
    DeployDownloadError,
    DeployError,
    DeployMoveError,
)
from ..models import CATEGORIES, ReleaseManifest
from ..output import OutputFormatter
from ..utils import MAX_OPEN_FILES
from .checksums import file_checksum

logger = logging.getLogger(__name__)


def verify_checksum(path: Path, checksum: str) -> None:
    """Check the MD5 of a file.

    Raises:
        DeployDownloadError: If the file cannot be read or does not match
    """
    try:
        actual = file_checksum(str(path))
    except OSError as e:
        raise DeployDownloadError(f"Could not read {path}: {e}") from e
    if actual != checksum:
        raise DeployDownloadError(f"Invalid checksum for {path}")


def _safe_join(base: Path, name: str) -> Path:
    """Join a release path below ``base``, refusing paths escaping it."""
    relative = Path(name)
    if relative.is_absolute() or ".." in relative.parts:
        raise DeployDownloadError(f"Refusing to write outside the project: {name}")
    return base / relative


class Downloader:
    """Fetches a release into a staging directory and moves it into place."""

    def __init__(
        self,
        client: DeployClient,
        project_root: Path,
        output: Optional[OutputFormatter] = None,
        max_workers: int = MAX_OPEN_FILES,
    ):
        self.client = client
        self.project_root = Path(project_root)
        self.output = output or OutputFormatter()
        self.max_workers = max(1, max_workers)

    def _files(self, release: ReleaseManifest) -> list[tuple[str, str, str, str]]:
        """Files of a release as (category dir, endpoint, name, version).

        Files missing either a checksum or a version are skipped.
        """
        files = []
        for category in CATEGORIES:
            for record in release.records(category.name):
                if not record.version:
                    logger.debug(f"Skipping {record.path}: no version in release")
                    continue
                files.append((category.directory, category.endpoint, record.path, record.version))
        return files

    def download(self, release: ReleaseManifest, destination: Path) -> None:
        """Download every file of a release below ``destination``.

        Args:
            release: Release to download
            destination: Staging directory

        Raises:
            DeployBatchError: If any download failed
        """
        destination = Path(destination)
        checksum_of = {
            (category.directory, name): checksum
            for category in CATEGORIES
            for name, checksum in release.checksums.get(category.name, {}).items()
        }

        def fetch(directory: str, endpoint: str, name: str, version: str) -> None:
            checksum = checksum_of[(directory, name)]
            content = self.client.download_file(endpoint, name, version, checksum)
            path = _safe_join(destination / directory, name)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
            except OSError as e:
                raise DeployDownloadError(f"Could not write {path}: {e}") from e
            verify_checksum(path, checksum)
            logger.debug(f"Downloaded {directory}/{name}")

        errors = self._run_batch(fetch, self._files(release))
        if errors:
            raise DeployBatchError(f"Failed to download {len(errors)} file(s)", errors)

    def move_files(self, destination: Path, release: ReleaseManifest) -> None:
        """Move downloaded files from the staging directory into the project.

        If every move failed the project is untouched; the user is told to
        move the files by hand and no error is raised.

        Raises:
            DeployMoveError: If only some moves failed (``partial`` is True)
        """
        destination = Path(destination)
        files = []
        for category in CATEGORIES:
            for name, checksum in sorted(release.checksums.get(category.name, {}).items()):
                files.append((category.directory, name, checksum))

        def move(directory: str, name: str, checksum: str) -> None:
            source = _safe_join(destination / directory, name)
            target = _safe_join(self.project_root / directory, name)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(source, target)
            except OSError as e:
                raise DeployError(f"Could not move {source} to {target}: {e}") from e
            verify_checksum(target, checksum)

        errors = self._run_batch(move, files)
        if not errors:
            return

        if len(errors) == len(files):
            # Nothing was moved, so the project is not corrupted
            self.output.warning(
                f"Failed to download the project to\n {self.project_root}\n"
                'Try "pydeploy download" and manually move contents from\n'
                "the temporary download location."
            )
            return

        self.output.warning(
            f"Failed to download the project to\n {self.project_root}\n\n"
            "It might have corrupted contents, due to partially moved files.\n\n"
            'Try "pydeploy download" and manually move contents from\n'
            "the temporary download location."
        )
        raise DeployMoveError(
            f"Failed to move {len(errors)} of {len(files)} file(s)", errors, partial=True
        )

    def run(
        self,
        location: Optional[str] = None,
        force: bool = False,
        release: Optional[ReleaseManifest] = None,
    ) -> Path:
        """Download the live release.

        Args:
            location: Staging directory (a temporary one when None)
            force: Move the files into the project, overwriting local ones
            release: Release to download (the live one when None)

        Returns:
            The staging directory

        Raises:
            DeployError: If nothing was deployed yet or a download failed
        """
        if release is None:
            release = self.client.get_latest_release()
            if release.is_empty():
                raise DeployError("Nothing to download. Not yet deployed to the app.")

        destination = Path(location) if location else Path(
            tempfile.mkdtemp(prefix="pydeploy_code_")
        )

        try:
            self.download(release, destination)
        except DeployError:
            self.output.error("Failed to download the project.")
            raise

        if not force:
            self.output.success(f"Successfully downloaded the project to {destination}.")
            return destination

        self.move_files(destination, release)
        return destination

    def _run_batch(self, func, items: list[tuple]) -> list[Exception]:
        """Run ``func(*item)`` for each item on a bounded pool, collecting errors."""
        errors: list[Exception] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(func, *item): item for item in items}
            for future in as_completed(futures):
                try:
                    future.result()
                except Exception as e:
                    logger.debug(f"{futures[future]} failed: {e}")
                    errors.append(e)
        return errors
