"""Cursor-based tailing of the remote execution log."""

import logging
import threading
from typing import Optional

from .api import DeployClient
from .clock import Clock
from .exceptions import DeployUsageError
from .models import LogCursor
from .output import OutputFormatter
from .utils import DEFAULT_FOLLOW_NUM_LOGS, DEFAULT_NUM_LOGS, DEFAULT_TICK_INTERVAL

logger = logging.getLogger(__name__)

LOG_LEVELS = ("INFO", "ERROR")


class LogTailer:
    """Prints log lines and remembers the newest timestamp seen.

    The server returns lines newest-first; they are printed oldest-first.
    Each round asks for lines at or after the cursor, so a line carrying
    the cursor timestamp itself may be returned again by the server.
    """

    def __init__(
        self,
        client: DeployClient,
        output: Optional[OutputFormatter] = None,
        clock: Optional[Clock] = None,
        interval: float = DEFAULT_TICK_INTERVAL,
    ):
        self.client = client
        self.output = output or OutputFormatter()
        self.clock = clock or Clock()
        self.interval = interval
        self.num = DEFAULT_NUM_LOGS
        self.level = "INFO"

    def tail(
        self,
        num: int = 0,
        follow: bool = False,
        level: str = "INFO",
        stop: Optional[threading.Event] = None,
    ) -> Optional[LogCursor]:
        """Print recent log lines, optionally following new ones.

        Args:
            num: Lines per round (0 uses the defaults)
            follow: Keep polling once per tick
            level: "INFO" or "ERROR"
            stop: Ends follow mode when set

        Returns:
            The last cursor

        Raises:
            DeployUsageError: If the level is not supported
            DeployAPIError: If fetching logs fails
        """
        level = level.upper()
        if level not in LOG_LEVELS:
            raise DeployUsageError(f"invalid level: {level!r}")
        self.level = level
        self.num = num or DEFAULT_NUM_LOGS

        cursor = self.round(None)
        if not follow:
            return cursor

        if not num:
            self.num = DEFAULT_FOLLOW_NUM_LOGS
        while not self.clock.wait(stop, self.interval):
            cursor = self.round(cursor)
        return cursor

    def round(self, cursor: Optional[LogCursor]) -> Optional[LogCursor]:
        """Fetch and print one page of lines.

        Args:
            cursor: Timestamp of the newest line printed so far

        Returns:
            The new cursor (unchanged when no line came back)
        """
        rows = self.client.get_logs(self.num, self.level, cursor)
        logger.debug(f"Fetched {len(rows)} log line(s) since {cursor}")
        for row in reversed(rows):
            self.output.print(row.message)
        if rows:
            return rows[0].timestamp
        return cursor
