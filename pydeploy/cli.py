"""CLI interface for pydeploy."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import DeployClient
from .config import ProjectConfig, config
from .exceptions import (
    DeployAuthenticationError,
    DeployError,
    NothingToUploadError,
)
from .logs import LogTailer
from .output import OutputFormatter
from .sync.develop import ContinuousDeployer, DevelopSession
from .sync.downloader import Downloader
from .sync.release import ReleaseCoordinator
from .sync.retry import DeployRunner
from .utils import DEFAULT_DEPLOY_RETRIES, DEFAULT_TICK_INTERVAL, error_string

logger = logging.getLogger(__name__)


def _client(ctx: Any) -> DeployClient:
    return DeployClient(api_key=ctx.obj.get("api_key"), api_url=ctx.obj.get("api_url"))


def _require_api_key(ctx: Any) -> None:
    out: OutputFormatter = ctx.obj["out"]
    if not config.is_configured() and not ctx.obj.get("api_key"):
        out.error("API key not configured.")
        out.info("Set DEPLOY_API_KEY or pass --api-key")
        ctx.exit(1)


def _fail(ctx: Any, error: DeployError) -> None:
    """Report an unrecovered error and exit with status 1."""
    out: OutputFormatter = ctx.obj["out"]
    if isinstance(error, DeployAuthenticationError):
        out.error(f"Authentication failed: {error}")
        out.info("Check your API key (DEPLOY_API_KEY or --api-key)")
    else:
        out.error(error_string(error, ctx.obj["verbose"]))
    ctx.exit(1)


@click.group()
@click.option("--api-key", "-k", envvar="DEPLOY_API_KEY", help="Deploy API key")
@click.option("--api-url", envvar="DEPLOY_API_URL", help="Deploy API base URL")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root holding the cloud/ and public/ folders",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    api_key: Optional[str],
    api_url: Optional[str],
    root: Path,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PyDeploy - Sync a project with the hosting platform and publish releases."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["api_url"] = api_url
    ctx.obj["root"] = root
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydeploy").setLevel(logging.DEBUG)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--description", "-d", default="", help="Add an optional description to the deploy")
@click.option(
    "--force", "-f", is_flag=True, help="Deploy files even if their content is unchanged"
)
@click.option(
    "--retries",
    "-n",
    type=click.IntRange(min=1),
    default=DEFAULT_DEPLOY_RETRIES,
    show_default=True,
    help="Max number of attempts until the first successful deploy",
)
@click.option("--silent", "-s", is_flag=True, help="Do not list the uploaded files")
@click.pass_context
def deploy(ctx: Any, description: str, force: bool, retries: int, silent: bool) -> None:
    """Deploy the project.

    Only files whose content changed since the live release are uploaded.
    A new release is created unless nothing changed.

    Examples:
        pydeploy deploy
        pydeploy deploy -d "Fix login" --retries 5
        pydeploy deploy --force
    """
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]
    root: Path = ctx.obj["root"]

    try:
        client = _client(ctx)
        coordinator = ReleaseCoordinator(
            client,
            root,
            out,
            verbose=not silent and not out.quiet,
            force=force,
            description=description,
        )
        runner = DeployRunner(coordinator, root, out, verbose=ctx.obj["verbose"])
        manifest = runner.run(retries)
    except KeyboardInterrupt:
        out.warning("\nDeploy cancelled by user")
        ctx.exit(130)
    except NothingToUploadError as e:
        out.warning(f"{e}. Add files to the cloud/ or public/ folder.")
        ctx.exit(1)
    except DeployError as e:
        _fail(ctx, e)
    else:
        if out.json_output:
            out.output_json(manifest.to_dict())


@main.command()
@click.option(
    "--interval",
    "-i",
    type=float,
    default=DEFAULT_TICK_INTERVAL,
    show_default=True,
    help="Number of seconds between deploys",
)
@click.option(
    "--fetch", "-f", is_flag=True, help="Always fetch the previous release from the server"
)
@click.pass_context
def develop(ctx: Any, interval: float, fetch: bool) -> None:
    """Deploy on every change and tail the INFO log.

    Runs until interrupted with Ctrl+C.
    """
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]
    root: Path = ctx.obj["root"]
    verbose = ctx.obj["verbose"]

    if interval <= 0:
        out.error("Interval must be positive")
        ctx.exit(1)

    session = None
    try:
        client = _client(ctx)
        coordinator = ReleaseCoordinator(client, root, out, verbose=verbose)
        deployer = ContinuousDeployer(root, out, interval=interval, must_fetch=fetch)
        session = DevelopSession(
            deployer, coordinator.deploy, LogTailer(client, out, interval=interval), out
        )
        session.run()
    except KeyboardInterrupt:
        if session is not None:
            session.stop()
        out.warning("\nStopped developing")
        ctx.exit(130)
    except DeployError as e:
        _fail(ctx, e)


@main.command()
@click.option("--num", "-n", type=click.IntRange(min=0), default=0, help="The number of messages to display")
@click.option("--follow", "-f", is_flag=True, help="Stream new messages from the server")
@click.option(
    "--level",
    "-l",
    default="INFO",
    show_default=True,
    help="The log level to restrict to (INFO or ERROR)",
)
@click.pass_context
def logs(ctx: Any, num: int, follow: bool, level: str) -> None:
    """Print recent log messages.

    Examples:
        pydeploy logs
        pydeploy logs -n 50 --level ERROR
        pydeploy logs --follow
    """
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]

    try:
        tailer = LogTailer(_client(ctx), out)
        tailer.tail(num=num, follow=follow, level=level)
    except KeyboardInterrupt:
        ctx.exit(130)
    except DeployError as e:
        _fail(ctx, e)


@main.command()
@click.option(
    "--location",
    "-l",
    type=click.Path(file_okay=False),
    default=None,
    help="Download the project at the given location (a temporary one by default)",
)
@click.option(
    "--force", "-f", is_flag=True, help="Overwrite the files in the project directory"
)
@click.pass_context
def download(ctx: Any, location: Optional[str], force: bool) -> None:
    """Download the files of the live release."""
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]

    try:
        downloader = Downloader(_client(ctx), ctx.obj["root"], out)
        downloader.run(location=location, force=force)
    except KeyboardInterrupt:
        out.warning("\nDownload cancelled by user")
        ctx.exit(130)
    except DeployError as e:
        _fail(ctx, e)


@main.command()
@click.option("--version", "-V", "release_version", default=None, help="Show the files of a release")
@click.pass_context
def releases(ctx: Any, release_version: Optional[str]) -> None:
    """List the releases of the project."""
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]

    try:
        history = _client(ctx).get_releases()
    except DeployError as e:
        _fail(ctx, e)
        return

    if release_version is None:
        rows = [[r.version, r.description, r.timestamp] for r in history]
        out.output_table(["Name", "Description", "Date"], rows, title="Releases")
        return

    for release in history:
        if release.version == release_version:
            if out.json_output:
                out.output_json(release.files)
                return
            for category, files in sorted(release.files.items()):
                out.info(f"Deployed {category} files:")
                for name in files:
                    out.print(name)
            return

    out.error(f"Unable to fetch files for release version: {release_version}")
    ctx.exit(1)


@main.command()
@click.option("--release", "-r", "release_name", default="", help="Release to roll back to")
@click.pass_context
def rollback(ctx: Any, release_name: str) -> None:
    """Roll back to a release (the previous one by default)."""
    _require_api_key(ctx)
    out: OutputFormatter = ctx.obj["out"]

    if release_name:
        out.info(f"Rolling back to {release_name}")
    else:
        out.info("Rolling back to previous release")
    try:
        live = _client(ctx).rollback(release_name)
    except DeployError as e:
        _fail(ctx, e)
        return
    out.success(f"Rolled back to version {live}")


@main.command()
@click.argument("version", required=False)
@click.option("--all", "-a", "show_all", is_flag=True, help="List the available runtime versions")
@click.pass_context
def runtime(ctx: Any, version: Optional[str], show_all: bool) -> None:
    """Show or set the runtime version of the project.

    Examples:
        pydeploy runtime            # Show the configured version
        pydeploy runtime --all      # List available versions
        pydeploy runtime 1.6.0      # Use version 1.6.0
    """
    out: OutputFormatter = ctx.obj["out"]
    root: Path = ctx.obj["root"]

    try:
        project_config = ProjectConfig.load(root)
        if show_all or version:
            _require_api_key(ctx)
            available = _client(ctx).get_runtime_versions()
            if show_all:
                current = project_config.runtime_version
                for v in available:
                    out.print(f"* {v}" if v == current else f"  {v}")
                return
            if version not in available:
                out.error(f"Runtime version {version} is not available")
                ctx.exit(1)
            project_config.runtime_version = version
            project_config.store(root)
            out.success(f"Current runtime version is {version}")
            return

        if not project_config.runtime_version:
            out.error("Runtime version not set for this project")
            ctx.exit(1)
        out.print(project_config.runtime_version)
    except DeployError as e:
        _fail(ctx, e)


if __name__ == "__main__":
    main()
