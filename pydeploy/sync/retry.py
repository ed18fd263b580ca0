"""Retries whole deploy cycles."""

import logging
from pathlib import Path
from typing import Callable, Optional

from ..clock import Clock
from ..config import ProjectConfig
from ..exceptions import DeployAuthenticationError, DeployError, NothingToUploadError
from ..models import ReleaseManifest
from ..output import OutputFormatter
from ..utils import DEFAULT_DEPLOY_RETRIES, error_string
from .release import ReleaseCoordinator

logger = logging.getLogger(__name__)

# Failures that would repeat identically on every attempt
TERMINAL_ERRORS = (NothingToUploadError, DeployAuthenticationError)


def linear_wait(attempt: int) -> float:
    """Default wait before the next attempt: ``attempt`` seconds."""
    return float(attempt)


class DeployRunner:
    """Runs deploy cycles until one succeeds or the attempts are used up.

    Repeated identical failures are reported in a collapsed form so the
    user does not see the same error text over and over.
    """

    def __init__(
        self,
        coordinator: ReleaseCoordinator,
        project_root: Path,
        output: Optional[OutputFormatter] = None,
        verbose: bool = False,
        wait: Callable[[int], float] = linear_wait,
        clock: Optional[Clock] = None,
    ):
        self.coordinator = coordinator
        self.project_root = Path(project_root)
        self.output = output or OutputFormatter()
        self.verbose = verbose
        self.wait = wait
        self.clock = clock or Clock()

    def run(self, max_attempts: int = DEFAULT_DEPLOY_RETRIES) -> ReleaseManifest:
        """Deploy, retrying on failure.

        Args:
            max_attempts: Total number of deploy attempts

        Returns:
            Manifest of the live release

        Raises:
            DeployError: The failure of the last attempt
        """
        attempts = max(1, max_attempts)
        previous_message: Optional[str] = None

        for attempt in range(attempts):
            project_config = ProjectConfig.load(self.project_root)
            runtime_version = project_config.runtime_version
            try:
                manifest = self.coordinator.deploy(runtime_version)
            except TERMINAL_ERRORS:
                raise
            except DeployError as e:
                if attempt == attempts - 1:
                    raise
                message = error_string(e, self.verbose)
                previous_message = self._report_retry(attempt, message, previous_message)
                continue

            if not runtime_version and manifest.runtime_version:
                project_config = ProjectConfig.load(self.project_root)
                project_config.runtime_version = manifest.runtime_version
                project_config.store(self.project_root)
            return manifest

        # Unreachable: the last attempt either returns or raises
        raise RuntimeError("deploy loop exited without a result")

    def _report_retry(
        self, attempt: int, message: str, previous_message: Optional[str]
    ) -> str:
        seconds = self.wait(attempt)
        logger.debug(f"Deploy attempt {attempt + 1} failed: {message}")
        if message == previous_message:
            self.output.warning(
                "Sorry, deploy failed again with same error.\n"
                f"Will retry in {int(seconds)} seconds.\n"
            )
        else:
            self.output.warning(
                f"Deploy failed with error:\n{message}\n"
                f"Will retry in {int(seconds)} seconds.\n"
            )
        self.clock.sleep(seconds)
        return message
