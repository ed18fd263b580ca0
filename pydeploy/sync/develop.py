"""Continuous deploys while developing, coupled with log tailing."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from ..clock import Clock
from ..config import ProjectConfig
from ..exceptions import (
    DeployError,
    DeployNetworkError,
    DeployPublishError,
    ProjectConfigError,
)
from ..logs import LogTailer
from ..models import ReleaseManifest
from ..output import OutputFormatter
from ..utils import (
    DEFAULT_TICK_INTERVAL,
    DEVELOP_FOLLOW_NUM_LOGS,
    MAX_LOG_RETRIES,
    NETWORK_ERROR_WAIT,
    OTHER_ERROR_WAIT,
)

logger = logging.getLogger(__name__)

DeployFunc = Callable[[str, Optional[ReleaseManifest], bool], ReleaseManifest]


class ContinuousDeployer:
    """Redeploys the project once per tick.

    The loop waits one tick before each cycle. The project config is read
    again on every cycle, so runtime version changes are picked up without
    a restart.
    """

    def __init__(
        self,
        project_root: Path,
        output: Optional[OutputFormatter] = None,
        clock: Optional[Clock] = None,
        interval: float = DEFAULT_TICK_INTERVAL,
        must_fetch: bool = False,
    ):
        """Initialize the deployer.

        Args:
            project_root: Directory holding the project config
            output: Output formatter for config errors
            clock: Clock driving the ticks
            interval: Seconds between deploys
            must_fetch: Always fetch the previous release from the server
        """
        self.project_root = Path(project_root)
        self.output = output or OutputFormatter()
        self.clock = clock or Clock()
        self.interval = interval or DEFAULT_TICK_INTERVAL
        self.must_fetch = must_fetch
        self.state = "starting"
        self.cycles = 0

    def run(
        self,
        deploy: DeployFunc,
        first: Optional[threading.Event] = None,
        done: Optional[threading.Event] = None,
    ) -> None:
        """Deploy on every tick until ``done`` is set.

        Args:
            deploy: Called as ``deploy(runtime_version, previous, True)``
            first: Set once the first cycle has completed or was aborted
            done: Stops the loop at the next tick boundary
        """
        previous: Optional[ReleaseManifest] = None
        config_broken = False
        self.state = "looping"

        while not self.clock.wait(done, self.interval):
            try:
                project_config = ProjectConfig.load(self.project_root)
            except ProjectConfigError as e:
                if not config_broken:
                    config_broken = True
                    path = e.path or str(ProjectConfig.config_path(self.project_root))
                    self.output.error(
                        f"Config malformed.\nPlease fix your config file in {path} "
                        "and try again."
                    )
                _signal(first)
                continue
            config_broken = False

            result: Optional[ReleaseManifest] = None
            try:
                result = deploy(project_config.runtime_version, previous, True)
            except DeployPublishError as e:
                logger.debug(f"Develop cycle failed to publish: {e}")
                result = e.fallback
            except DeployError as e:
                logger.debug(f"Develop cycle failed: {e}")

            self.cycles += 1
            if not self.must_fetch:
                previous = result
            _signal(first)

        self.state = "stopped"
        logger.debug(f"Continuous deploy stopped after {self.cycles} cycle(s)")


def _signal(event: Optional[threading.Event]) -> None:
    if event is not None and not event.is_set():
        event.set()


class DevelopSession:
    """The develop command: continuous deploys plus log tailing."""

    def __init__(
        self,
        deployer: ContinuousDeployer,
        deploy: DeployFunc,
        tailer: LogTailer,
        output: Optional[OutputFormatter] = None,
        clock: Optional[Clock] = None,
    ):
        self.deployer = deployer
        self.deploy = deploy
        self.tailer = tailer
        self.output = output or OutputFormatter()
        self.clock = clock or Clock()
        self.first = threading.Event()
        self.done = threading.Event()

    def run(self) -> None:
        """Start deploying, wait for the first cycle, then follow the logs.

        Raises:
            DeployError: The last log error once the retry budget is spent
        """
        thread = threading.Thread(
            target=self._run_deployer,
            name="pydeploy-develop",
            daemon=True,
        )
        thread.start()
        try:
            self.first.wait()
            error: Optional[DeployError] = None
            for attempt in range(MAX_LOG_RETRIES):
                # Only the latest line right after the first deploy
                try:
                    self.tailer.tail(num=1, level="INFO")
                except DeployError as e:
                    error = self.handle_error(e, self.clock.sleep)
                    continue

                try:
                    self.tailer.tail(
                        num=DEVELOP_FOLLOW_NUM_LOGS,
                        follow=True,
                        level="INFO",
                        stop=self.done,
                    )
                    return
                except DeployError as e:
                    error = self.handle_error(e, self.clock.sleep)
                logger.debug(f"Log tailing attempt {attempt + 1} failed")
            if error is not None:
                raise error
        finally:
            self.done.set()

    def _run_deployer(self) -> None:
        try:
            self.deployer.run(self.deploy, self.first, self.done)
        finally:
            # Never leave run() waiting on a crashed deployer
            _signal(self.first)

    def stop(self) -> None:
        self.done.set()

    def handle_error(
        self, error: DeployError, sleep: Callable[[float], None]
    ) -> DeployError:
        """Back off after a failed log fetch.

        Network errors wait longer than other errors.

        Returns:
            The error, for the caller to keep
        """
        if isinstance(error, DeployNetworkError):
            self.output.warning(
                f"Flaky network. Waiting {NETWORK_ERROR_WAIT}s before trying to "
                "fetch logs again."
            )
            sleep(NETWORK_ERROR_WAIT)
        else:
            logger.debug(f"Fetching logs failed: {error}")
            sleep(OTHER_ERROR_WAIT)
        return error
