"""Configuration handling for pydeploy.

Two kinds of configuration exist:

* :class:`Config` holds the user credentials (API key and URL). They are
  read from the environment or from ``~/.config/pydeploy/config``.
* :class:`ProjectConfig` lives at the project root and remembers the
  runtime version the project deploys with.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import ProjectConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.pydeploy.dev/1"

API_KEY_ENV = "DEPLOY_API_KEY"
API_URL_ENV = "DEPLOY_API_URL"

PROJECT_CONFIG_FILE = ".deploy.project"
PROJECT_TYPE = 1


class Config:
    """User-level configuration (credentials)."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ~/.config/pydeploy
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pydeploy"
        self.config_dir = config_dir
        self._values: Optional[dict[str, str]] = None

    def get_config_path(self) -> Path:
        """Path of the credentials file."""
        return self.config_dir / "config"

    def _load(self) -> dict[str, str]:
        if self._values is not None:
            return self._values

        values: dict[str, str] = {}
        path = self.get_config_path()
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip()
        except FileNotFoundError:
            logger.debug(f"No config file at {path}")
        self._values = values
        return values

    @property
    def api_key(self) -> Optional[str]:
        """API key from the environment or the config file."""
        return os.environ.get(API_KEY_ENV) or self._load().get(API_KEY_ENV)

    @property
    def api_url(self) -> str:
        """API base URL from the environment or the config file."""
        return (
            os.environ.get(API_URL_ENV)
            or self._load().get(API_URL_ENV)
            or DEFAULT_API_URL
        )

    def is_configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self.api_key)


config = Config()


@dataclass
class ProjectConfig:
    """Per-project settings stored at the project root."""

    runtime_version: str = ""
    """Runtime (SDK) version used by deploys; empty means "latest"."""

    project_type: int = PROJECT_TYPE

    @staticmethod
    def config_path(root: Path) -> Path:
        """Path of the project config file for a project root."""
        return Path(root) / PROJECT_CONFIG_FILE

    @classmethod
    def load(cls, root: Path) -> "ProjectConfig":
        """Read the project config.

        A missing file yields a default config.

        Args:
            root: Project root directory

        Returns:
            ProjectConfig instance

        Raises:
            ProjectConfigError: If the file exists but cannot be parsed
        """
        path = cls.config_path(root)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError) as e:
            raise ProjectConfigError(
                f"Could not read project config {path}: {e}", path=str(path)
            ) from e

        if not isinstance(data, dict):
            raise ProjectConfigError(
                f"Project config {path} must contain a JSON object", path=str(path)
            )
        runtime = data.get("runtime") or {}
        if not isinstance(runtime, dict):
            raise ProjectConfigError(
                f"Invalid runtime section in {path}", path=str(path)
            )
        try:
            project_type = int(data.get("project_type", PROJECT_TYPE))
        except (TypeError, ValueError) as e:
            raise ProjectConfigError(
                f"Invalid project_type in {path}", path=str(path)
            ) from e
        return cls(
            runtime_version=str(runtime.get("version") or ""),
            project_type=project_type,
        )

    def to_dict(self) -> dict:
        data: dict = {"project_type": self.project_type}
        if self.runtime_version:
            data["runtime"] = {"version": self.runtime_version}
        return data

    def store(self, root: Path) -> None:
        """Write the project config to the project root."""
        path = self.config_path(root)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")
        logger.debug(f"Stored project config at {path}")
