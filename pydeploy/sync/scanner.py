"""Directory scanning utilities for deploys."""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from ..exceptions import DeployDiscoveryError
from ..output import OutputFormatter
from .ignore import Decision, IgnorePatternError, Matcher, build_matcher, load_ignore_file

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Collects the files of a category folder.

    The ``.deployignore`` file is read from the project root and its
    patterns are evaluated relative to the scanned folder.

    Examples:
        >>> scanner = DirectoryScanner(Path("/project"))
        >>> included, excluded = scanner.discover(Path("/project/cloud"), {".js"})
    """

    def __init__(
        self,
        project_root: Path,
        output: Optional[OutputFormatter] = None,
        verbose: bool = False,
    ):
        """Initialize directory scanner.

        Args:
            project_root: Directory holding the ignore file
            output: Output formatter used to report pattern errors
            verbose: Whether pattern errors are reported
        """
        self.project_root = Path(project_root)
        self.output = output
        self.verbose = verbose

    def load_matcher(self) -> Matcher:
        """Compile the ignore rules of the project.

        Raises:
            DeployDiscoveryError: If the ignore file exists but cannot be read
        """
        try:
            content = load_ignore_file(self.project_root)
        except OSError as e:
            raise DeployDiscoveryError(f"Could not read ignore file: {e}") from e

        matcher, errors = build_matcher(content)
        if errors:
            self._report_errors("Error compiling the ignore file:", errors)
        return matcher

    def _report_errors(self, title: str, errors: list[IgnorePatternError]) -> None:
        for error in errors:
            logger.debug(f"Ignore pattern error: {error}")
        if self.verbose and self.output is not None:
            self.output.warning(title + "\n" + "\n".join(str(e) for e in errors))

    def discover(
        self, directory: Path, suffixes: Iterable[str] = ()
    ) -> tuple[list[str], list[str]]:
        """Walk a folder and split its files into included and excluded ones.

        Symbolic links are followed. Directories excluded by the ignore
        rules are pruned: their files appear in neither list. Files
        rejected by the suffix filter or excluded individually appear in
        the excluded list.

        Args:
            directory: Folder to walk
            suffixes: Allowed extensions such as ".js" (empty allows all)

        Returns:
            Tuple of (included, excluded) absolute paths, both sorted

        Raises:
            DeployDiscoveryError: On any file-system error during the walk
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.debug(f"Nothing to scan, {directory} is not a directory")
            return [], []

        matcher = self.load_matcher()
        allowed = set(suffixes)
        included: list[str] = []
        excluded: list[str] = []

        def on_error(error: OSError) -> None:
            raise DeployDiscoveryError(f"Could not scan {error.filename}: {error}") from error

        root = str(directory)
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=True):
            if _is_symlink_loop(root, dirpath):
                logger.debug(f"Skipping symlink loop at {dirpath}")
                dirnames[:] = []
                continue

            kept = []
            for name in sorted(dirnames):
                relative = _relative(root, os.path.join(dirpath, name))
                if matcher.match(relative, True) is Decision.EXCLUDE:
                    logger.debug(f"Pruning ignored directory: {relative}")
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in filenames:
                path = os.path.join(dirpath, name)
                try:
                    os.stat(path)
                except OSError as e:
                    raise DeployDiscoveryError(f"Could not scan {path}: {e}") from e

                relative = _relative(root, path)
                if matcher.match(relative, False) is Decision.EXCLUDE:
                    excluded.append(path)
                    continue
                if allowed and os.path.splitext(name)[1] not in allowed:
                    excluded.append(path)
                    continue
                included.append(path)

        included.sort()
        excluded.sort()
        logger.debug(
            f"Scanned {directory}: {len(included)} included, {len(excluded)} excluded"
        )
        return included, excluded


def _relative(root: str, path: str) -> str:
    return Path(os.path.relpath(path, root)).as_posix()


def _is_symlink_loop(root: str, dirpath: str) -> bool:
    """True if dirpath resolves to one of its own ancestors."""
    real = os.path.realpath(dirpath)
    parent = dirpath
    while parent != root:
        parent = os.path.dirname(parent)
        if os.path.realpath(parent) == real:
            return True
        if len(parent) < len(root):
            break
    return False
