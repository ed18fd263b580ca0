"""Uploads the changed files of a category."""

import logging
import mimetypes
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.progress import Progress

from ..api import DeployClient
from ..exceptions import DeployDiscoveryError, DeployUploadBatchError
from ..models import Category
from ..output import OutputFormatter
from ..utils import DEFAULT_MIME_TYPE, MAX_OPEN_FILES
from .checksums import compute_checksums
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)


@dataclass
class SyncSession:
    """Everything needed to sync one category during a deploy cycle."""

    project_root: Path
    """Project root (parent of the category folder)"""

    category: Category
    """Category being synced"""

    previous_checksums: dict[str, str] = field(default_factory=dict)
    """Checksums of the category in the previous release"""

    previous_versions: dict[str, str] = field(default_factory=dict)
    """Version tokens of the category in the previous release"""

    force: bool = False
    """Upload every file, even unchanged ones"""

    max_workers: int = MAX_OPEN_FILES
    """Maximum number of files uploaded at the same time"""

    @property
    def source_dir(self) -> Path:
        return Path(self.project_root) / self.category.directory

    @property
    def endpoint(self) -> str:
        return self.category.endpoint


@dataclass
class SyncResult:
    """Outcome of syncing one category."""

    checksums: dict[str, str]
    versions: dict[str, str]
    uploaded: list[str] = field(default_factory=list)
    """Relative paths of the files uploaded in this cycle"""

    ignored: list[str] = field(default_factory=list)
    """Absolute paths of the files excluded from the deploy"""


def guess_mime_type(path: str) -> str:
    """Content type used when uploading a file."""
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type or DEFAULT_MIME_TYPE


class Uploader:
    """Diffs a category against the previous release and uploads the changes.

    A file is uploaded unless its checksum equals the previous checksum
    and the previous release holds a version token for it, in which case
    the token is carried forward. ``force`` uploads every file.
    """

    def __init__(
        self,
        client: DeployClient,
        output: Optional[OutputFormatter] = None,
        verbose: bool = False,
        force: bool = False,
        show_progress: bool = True,
    ):
        """Initialize the uploader.

        Args:
            client: Deploy API client
            output: Output formatter for status messages
            verbose: List the uploaded and ignored files
            force: Upload every file regardless of checksums
            show_progress: Show a progress bar while uploading
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.verbose = verbose
        self.force = force
        self.show_progress = show_progress

    def sync(self, session: SyncSession) -> SyncResult:
        """Sync one category.

        Args:
            session: Category, previous release slices and limits

        Returns:
            SyncResult with the checksums and versions of every file

        Raises:
            DeployDiscoveryError: If the files cannot be collected or read
            DeployUploadBatchError: If at least one upload failed
        """
        source_dir = session.source_dir
        scanner = DirectoryScanner(session.project_root, self.output, self.verbose)
        included, ignored = scanner.discover(source_dir, session.category.suffixes)

        def normalize(path: str) -> str:
            return Path(os.path.relpath(path, source_dir)).as_posix()

        checksums = compute_checksums(included, normalize, session.max_workers)

        versions: dict[str, str] = {}
        changed: list[str] = []
        force = self.force or session.force
        for path in included:
            name = normalize(path)
            if not force:
                unchanged = session.previous_checksums.get(name) == checksums[name]
                previous_version = session.previous_versions.get(name)
                if unchanged and previous_version:
                    versions[name] = previous_version
                    continue
            changed.append(path)

        if not changed:
            logger.debug(f"No changes in {session.category.directory}")
            return SyncResult(checksums=checksums, versions=versions, ignored=ignored)

        if self.verbose:
            self.output.info(
                f"Uploading recent changes to {session.category.label}...\n"
                "The following files will be uploaded:\n" + "\n".join(changed)
            )
            if ignored:
                self.output.info(
                    "The following files will be ignored:\n" + "\n".join(ignored)
                )

        errors = self._upload_all(session, changed, normalize, versions)
        if errors:
            raise DeployUploadBatchError(
                f"Failed to upload {len(errors)} file(s) to {session.category.label}",
                errors,
                checksums=checksums,
            )

        return SyncResult(
            checksums=checksums,
            versions=versions,
            uploaded=sorted(normalize(path) for path in changed),
            ignored=ignored,
        )

    def _upload_all(
        self,
        session: SyncSession,
        paths: list[str],
        normalize,
        versions: dict[str, str],
    ) -> list[Exception]:
        """Upload files on a bounded pool, recording their version tokens.

        Returns:
            Every error raised by an upload
        """
        lock = threading.Lock()
        errors: list[Exception] = []
        max_workers = max(1, session.max_workers)
        logger.debug(f"Uploading {len(paths)} file(s) with {max_workers} workers")

        def upload(path: str) -> None:
            start = time.time()
            name = normalize(path)
            version = self._upload_file(session, path, name)
            with lock:
                versions[name] = version
            logger.debug(f"Uploaded {name} in {time.time() - start:.2f}s")

        def run(progress: Optional[Progress] = None, task=None) -> None:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {executor.submit(upload, path): path for path in paths}
                for future in as_completed(futures):
                    try:
                        future.result()
                    except Exception as e:
                        logger.debug(f"Upload of {futures[future]} failed: {e}")
                        errors.append(e)
                    if progress is not None:
                        progress.update(task, advance=1)

        if self.show_progress and not self.output.quiet:
            with Progress(transient=True) as progress:
                task = progress.add_task(
                    f"Uploading to {session.category.label}...", total=len(paths)
                )
                run(progress, task)
        else:
            run()

        return errors

    def _upload_file(self, session: SyncSession, path: str, name: str) -> str:
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise DeployDiscoveryError(f"Could not read {path}: {e}") from e
        return self.client.upload_file(
            session.endpoint, name, content, guess_mime_type(path)
        )
