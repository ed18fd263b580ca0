"""Content checksums for change detection."""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

from ..exceptions import DeployDiscoveryError
from ..utils import CHECKSUM_CHUNK_SIZE, MAX_OPEN_FILES

logger = logging.getLogger(__name__)


def file_checksum(path: str) -> str:
    """MD5 hex digest of a file, read in chunks.

    MD5 only serves change detection here.
    """
    h = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHECKSUM_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_checksums(
    paths: list[str],
    normalize: Callable[[str], str],
    max_workers: int = MAX_OPEN_FILES,
) -> dict[str, str]:
    """Compute the checksum of every file.

    At most ``max_workers`` files are open at the same time. If any file
    fails, the whole batch fails with the first error observed.

    Args:
        paths: Files to hash
        normalize: Maps a file path to the key used in the result
        max_workers: Maximum number of concurrent reads

    Returns:
        Dictionary mapping normalized path to MD5 hex digest

    Raises:
        DeployDiscoveryError: If a file cannot be read
    """
    if not paths:
        return {}

    checksums: dict[str, str] = {}
    first_error: Exception | None = None

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {executor.submit(file_checksum, path): path for path in paths}
        for future in as_completed(futures):
            path = futures[future]
            try:
                checksums[normalize(path)] = future.result()
            except OSError as e:
                if first_error is None:
                    first_error = DeployDiscoveryError(f"Could not read {path}: {e}")
                    first_error.__cause__ = e
                    logger.debug(f"Checksum of {path} failed: {e}")

    if first_error is not None:
        raise first_error

    logger.debug(f"Computed {len(checksums)} checksums")
    return checksums
