"""Tests for the diff engine and uploader."""

import hashlib
import tempfile
import threading
from pathlib import Path
from unittest.mock import Mock

import pytest

from pydeploy.api import DeployClient
from pydeploy.exceptions import DeployUploadBatchError, DeployUploadError
from pydeploy.models import EXECUTABLE_CATEGORY, STATIC_CATEGORY
from pydeploy.output import OutputFormatter
from pydeploy.sync.uploader import SyncSession, Uploader, guess_mime_type


def _md5(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


class TestUploader:
    """Test Uploader.sync."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock deploy client returning one token per file."""
        client = Mock(spec=DeployClient)
        client.upload_file.side_effect = lambda endpoint, name, content, mime: f"tok-{name}"
        return client

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True  # Suppress output during tests
        return output

    @pytest.fixture
    def project(self):
        """Create a project with two scripts and a non-script file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "cloud" / "lib").mkdir(parents=True)
            (root / "cloud" / "main.js").write_text("main")
            (root / "cloud" / "lib" / "util.js").write_text("util")
            (root / "cloud" / "notes.txt").write_text("notes")
            yield root

    def _session(self, root, **kwargs):
        return SyncSession(project_root=root, category=EXECUTABLE_CATEGORY, **kwargs)

    def test_first_sync_uploads_everything(self, project, mock_client, mock_output):
        uploader = Uploader(mock_client, mock_output)

        result = uploader.sync(self._session(project))

        assert result.checksums == {"main.js": _md5("main"), "lib/util.js": _md5("util")}
        assert result.versions == {"main.js": "tok-main.js", "lib/util.js": "tok-lib/util.js"}
        assert result.uploaded == ["lib/util.js", "main.js"]
        assert result.ignored == [str(project / "cloud" / "notes.txt")]
        endpoints = {c.args[0] for c in mock_client.upload_file.call_args_list}
        assert endpoints == {"scripts"}

    def test_unchanged_files_carry_versions_forward(self, project, mock_client, mock_output):
        """Second sync with no changes performs zero uploads."""
        uploader = Uploader(mock_client, mock_output)
        first = uploader.sync(self._session(project))
        mock_client.upload_file.reset_mock()

        second = uploader.sync(
            self._session(
                project,
                previous_checksums=first.checksums,
                previous_versions=first.versions,
            )
        )

        mock_client.upload_file.assert_not_called()
        assert second.checksums == first.checksums
        assert second.versions == first.versions
        assert second.uploaded == []

    def test_only_changed_file_uploaded(self, project, mock_client, mock_output):
        previous_checksums = {"main.js": _md5("main"), "lib/util.js": _md5("old")}
        previous_versions = {"main.js": "old-main", "lib/util.js": "old-util"}

        result = Uploader(mock_client, mock_output).sync(
            self._session(
                project,
                previous_checksums=previous_checksums,
                previous_versions=previous_versions,
            )
        )

        assert result.uploaded == ["lib/util.js"]
        assert result.versions == {"main.js": "old-main", "lib/util.js": "tok-lib/util.js"}

    def test_missing_previous_version_forces_upload(self, project, mock_client, mock_output):
        """Same checksum without a version token is uploaded again."""
        result = Uploader(mock_client, mock_output).sync(
            self._session(
                project,
                previous_checksums={"main.js": _md5("main"), "lib/util.js": _md5("util")},
                previous_versions={"lib/util.js": "old-util"},
            )
        )

        assert result.uploaded == ["main.js"]

    def test_force_reuploads_everything(self, project, mock_client, mock_output):
        uploader = Uploader(mock_client, mock_output)
        first = uploader.sync(self._session(project))
        mock_client.upload_file.reset_mock()

        forced = Uploader(mock_client, mock_output, force=True).sync(
            self._session(
                project,
                previous_checksums=first.checksums,
                previous_versions=first.versions,
            )
        )

        assert mock_client.upload_file.call_count == 2
        assert forced.uploaded == ["lib/util.js", "main.js"]

    def test_failures_are_aggregated(self, project, mock_client, mock_output):
        """Every failed upload is reported, with the checksums attached."""

        def upload(endpoint, name, content, mime):
            raise DeployUploadError(f"Upload of {name} failed")

        mock_client.upload_file.side_effect = upload

        with pytest.raises(DeployUploadBatchError) as exc_info:
            Uploader(mock_client, mock_output).sync(self._session(project))

        error = exc_info.value
        assert len(error.errors) == 2
        assert set(error.checksums) == {"main.js", "lib/util.js"}
        assert "main.js" in str(error)

    def test_concurrency_bounded_by_max_workers(self, mock_client, mock_output):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "public").mkdir()
            for i in range(12):
                (root / "public" / f"f{i}.txt").write_text(str(i))

            lock = threading.Lock()
            active = [0]
            peak = [0]
            release = threading.Event()

            def upload(endpoint, name, content, mime):
                with lock:
                    active[0] += 1
                    peak[0] = max(peak[0], active[0])
                release.wait(0.01)
                with lock:
                    active[0] -= 1
                return "tok"

            mock_client.upload_file.side_effect = upload
            session = SyncSession(
                project_root=root, category=STATIC_CATEGORY, max_workers=3
            )

            result = Uploader(mock_client, mock_output).sync(session)

            assert len(result.uploaded) == 12
            assert peak[0] <= 3

    def test_verbose_lists_files(self, project, mock_client, mock_output):
        Uploader(mock_client, mock_output, verbose=True).sync(self._session(project))

        messages = [c.args[0] for c in mock_output.info.call_args_list]
        assert any("Uploading recent changes to scripts..." in m for m in messages)
        assert any("The following files will be ignored:" in m for m in messages)


class TestGuessMimeType:
    """Tests for upload content types."""

    def test_known_extension(self):
        assert guess_mime_type("index.html") == "text/html"

    def test_unknown_extension(self):
        assert guess_mime_type("blob.unknownext") == "application/octet-stream"
