"""Utility functions and constants for pydeploy."""

import re

from .exceptions import DeployBatchError

# =============================================================================
# Constants for sync operations
# =============================================================================

# Maximum number of files read or transferred at the same time.
# Keeps the number of open file descriptors bounded.
MAX_OPEN_FILES: int = 24

# Deploy retry configuration
DEFAULT_DEPLOY_RETRIES: int = 3

# Interval between develop-mode deploys and log polls (seconds)
DEFAULT_TICK_INTERVAL: float = 1.0

# Log tailing in develop mode
MAX_LOG_RETRIES: int = 50
DEVELOP_FOLLOW_NUM_LOGS: int = 25
DEFAULT_NUM_LOGS: int = 10
DEFAULT_FOLLOW_NUM_LOGS: int = 100

# Backoff used by develop mode when log fetching fails (seconds)
NETWORK_ERROR_WAIT: int = 20
OTHER_ERROR_WAIT: int = 10

# Default MIME type for uploads with an unknown extension
DEFAULT_MIME_TYPE: str = "application/octet-stream"

# Read size used while hashing files
CHECKSUM_CHUNK_SIZE: int = 64 * 1024


# =============================================================================
# Version ordering utilities
# =============================================================================


def _version_key(version: str) -> list[tuple[int, object]]:
    """Split a version string into comparable numeric and text parts."""
    key: list[tuple[int, object]] = []
    for part in re.split(r"[.\-+]", version):
        if part.isdigit():
            key.append((0, int(part)))
        else:
            key.append((1, part))
    return key


def sort_versions_desc(versions: list[str]) -> list[str]:
    """Sort version strings in natural order, newest first.

    Examples:
        >>> sort_versions_desc(["1.2.0", "1.10.0", "1.9.1"])
        ['1.10.0', '1.9.1', '1.2.0']
    """
    return sorted(versions, key=_version_key, reverse=True)


# =============================================================================
# Error rendering
# =============================================================================


def error_string(error: BaseException, verbose: bool = False) -> str:
    """Render an error for the terminal.

    Plain mode returns the human readable message only. Verbose mode also
    walks the chain of causes and lists them below the message.

    Args:
        error: Exception to render
        verbose: Whether to include the chain of causes

    Returns:
        Message suitable for printing
    """
    message = str(error) or error.__class__.__name__
    if not verbose:
        return message

    lines = [message]
    if isinstance(error, DeployBatchError):
        for sub_error in error.errors:
            lines.extend(_cause_lines(sub_error, indent="  "))

    cause = error.__cause__
    seen = {id(error)}
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        lines.append(f"Caused by: {cause.__class__.__name__}: {cause}")
        cause = cause.__cause__
    return "\n".join(lines)


def _cause_lines(error: BaseException, indent: str) -> list[str]:
    lines = []
    cause = error.__cause__
    while cause is not None:
        lines.append(f"{indent}Caused by: {cause.__class__.__name__}: {cause}")
        cause = cause.__cause__
    return lines
