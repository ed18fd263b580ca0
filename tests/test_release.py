"""Tests for the release coordinator."""

import hashlib
import json
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from pydeploy.api import DeployClient
from pydeploy.config import ProjectConfig
from pydeploy.exceptions import (
    DeployAPIError,
    DeployError,
    DeployPublishError,
    NothingToUploadError,
)
from pydeploy.models import ReleaseManifest
from pydeploy.output import OutputFormatter
from pydeploy.sync.release import ReleaseCoordinator


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class TestReleaseCoordinator:
    """Test ReleaseCoordinator.deploy."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock deploy client echoing the published manifest."""
        client = Mock(spec=DeployClient)
        client.get_runtime_versions.return_value = ["1.10.0", "1.9.1", "1.2.0"]
        client.get_latest_release.return_value = ReleaseManifest()
        client.upload_file.side_effect = lambda endpoint, name, content, mime: (
            f"{endpoint}:{name}"
        )
        client.publish_release.side_effect = lambda manifest: ReleaseManifest(
            release_name="v1", runtime_version=manifest.runtime_version
        )
        return client

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True
        return output

    @pytest.fixture
    def project(self):
        """Create a project with one script and one hosted file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "cloud").mkdir()
            (root / "public").mkdir()
            (root / "cloud" / "main.js").write_bytes(b"Parse.Cloud.define()")
            (root / "public" / "index.html").write_bytes(b"<html></html>")
            yield root

    def test_end_to_end_first_deploy(self, project, mock_client, mock_output):
        """Both files are uploaded and published with the latest runtime."""
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)

        manifest = coordinator.deploy("")

        assert mock_client.upload_file.call_count == 2
        published = mock_client.publish_release.call_args[0][0]
        assert published.runtime_version == "1.10.0"
        assert published.checksums == {
            "executable": {"main.js": _md5(b"Parse.Cloud.define()")},
            "static": {"index.html": _md5(b"<html></html>")},
        }
        assert published.versions == {
            "executable": {"main.js": "scripts:main.js"},
            "static": {"index.html": "hosted_files:index.html"},
        }
        assert manifest.release_name == "v1"
        assert manifest.runtime_version == "1.10.0"
        assert ProjectConfig.load(project).runtime_version == "1.10.0"
        mock_output.info.assert_any_call("New release is named v1 (using runtime v1.10.0)")

    def test_second_cycle_is_a_no_op(self, project, mock_client, mock_output):
        """An unchanged project uploads nothing and publishes nothing."""
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)
        first = coordinator.deploy("1.10.0")
        mock_client.upload_file.reset_mock()
        mock_client.publish_release.reset_mock()

        second = coordinator.deploy("1.10.0", previous=first)

        mock_client.upload_file.assert_not_called()
        mock_client.publish_release.assert_not_called()
        assert second is first

    def test_runtime_change_publishes_without_uploads(self, project, mock_client, mock_output):
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)
        first = coordinator.deploy("1.9.1")
        mock_client.upload_file.reset_mock()

        coordinator.deploy("1.10.0", previous=first)

        mock_client.upload_file.assert_not_called()
        assert mock_client.publish_release.call_count == 2

    def test_previous_release_fetched_when_missing(self, project, mock_client, mock_output):
        ReleaseCoordinator(mock_client, project, mock_output).deploy("1.10.0")
        mock_client.get_latest_release.assert_called_once()

    def test_nothing_to_upload(self, mock_client, mock_output):
        with tempfile.TemporaryDirectory() as tmpdir:
            coordinator = ReleaseCoordinator(mock_client, Path(tmpdir), mock_output)
            with pytest.raises(NothingToUploadError):
                coordinator.deploy("1.10.0")
        mock_client.publish_release.assert_not_called()

    def test_no_runtime_versions_available(self, project, mock_client, mock_output):
        mock_client.get_runtime_versions.return_value = []
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)
        with pytest.raises(DeployError, match="No runtime version"):
            coordinator.deploy("")

    def test_publish_failure_outside_develop(self, project, mock_client, mock_output):
        mock_client.publish_release.side_effect = DeployAPIError("boom")
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)

        with pytest.raises(DeployPublishError) as exc_info:
            coordinator.deploy("1.10.0")

        assert exc_info.value.fallback is None
        assert isinstance(exc_info.value.__cause__, DeployAPIError)

    def test_publish_failure_in_develop_adopts_checksums(
        self, project, mock_client, mock_output
    ):
        """The fallback keeps old versions but the new checksums."""
        previous = ReleaseManifest(
            checksums={"executable": {"main.js": "old"}},
            versions={"executable": {"main.js": "old-token"}},
            runtime_version="1.10.0",
            release_name="v7",
        )
        mock_client.publish_release.side_effect = DeployAPIError("boom")
        coordinator = ReleaseCoordinator(mock_client, project, mock_output)

        with pytest.raises(DeployPublishError) as exc_info:
            coordinator.deploy("1.10.0", previous=previous, for_develop=True)

        fallback = exc_info.value.fallback
        assert fallback.release_name == "v7"
        assert fallback.versions["executable"] == {"main.js": "old-token"}
        assert fallback.checksums["executable"] == {
            "main.js": _md5(b"Parse.Cloud.define()")
        }
        # The caller's manifest is left untouched
        assert previous.checksums["executable"] == {"main.js": "old"}

    def test_develop_success_message(self, project, mock_client, mock_output):
        ReleaseCoordinator(mock_client, project, mock_output).deploy(
            "1.10.0", previous=ReleaseManifest(), for_develop=True
        )
        mock_output.info.assert_any_call("Your changes are now live.")

    def test_server_warning_printed(self, project, mock_client, mock_output):
        mock_client.publish_release.side_effect = lambda manifest: ReleaseManifest(
            release_name="v2", runtime_version="1.10.0", warning="Deprecated SDK"
        )
        ReleaseCoordinator(mock_client, project, mock_output).deploy("1.10.0")
        mock_output.warning.assert_any_call("Deprecated SDK")

    def test_description_is_sent(self, project, mock_client, mock_output):
        ReleaseCoordinator(
            mock_client, project, mock_output, description="Fix login"
        ).deploy("1.10.0")
        published = mock_client.publish_release.call_args[0][0]
        assert published.to_dict()["description"] == "Fix login"

    def test_stored_project_config_is_valid_json(self, project, mock_client, mock_output):
        ReleaseCoordinator(mock_client, project, mock_output).deploy("")
        data = json.loads((project / ".deploy.project").read_text())
        assert data["runtime"] == {"version": "1.10.0"}
