"""Tests for release manifests and log models."""

import json

import pytest

from pydeploy.models import (
    EXECUTABLE,
    STATIC,
    FileRecord,
    LogCursor,
    LogLine,
    ReleaseManifest,
    ReleaseSummary,
)


class TestReleaseManifest:
    """Test ReleaseManifest serialization and comparison."""

    def test_default_has_both_categories(self):
        manifest = ReleaseManifest()
        assert manifest.checksums == {EXECUTABLE: {}, STATIC: {}}
        assert manifest.versions == {EXECUTABLE: {}, STATIC: {}}
        assert manifest.is_empty()

    def test_partial_maps_are_completed(self):
        manifest = ReleaseManifest(checksums={EXECUTABLE: {"a.js": "c1"}})
        assert manifest.checksums[STATIC] == {}
        assert manifest.versions[EXECUTABLE] == {}

    def test_to_dict_omits_empty_fields(self):
        manifest = ReleaseManifest(
            checksums={EXECUTABLE: {"a.js": "c1"}},
            versions={EXECUTABLE: {"a.js": "v1"}},
            runtime_version="1.6.0",
        )

        data = manifest.to_dict()

        assert data == {
            "checksums": {EXECUTABLE: {"a.js": "c1"}, STATIC: {}},
            "versions": {EXECUTABLE: {"a.js": "v1"}, STATIC: {}},
            "runtimeVersion": "1.6.0",
        }

    def test_from_dict_categorized(self):
        manifest = ReleaseManifest.from_dict(
            {
                "checksums": {EXECUTABLE: {"a.js": "c1"}, STATIC: {"i.html": "c2"}},
                "versions": {EXECUTABLE: {"a.js": "v1"}, STATIC: {"i.html": "v2"}},
                "releaseName": "v7",
                "runtimeVersion": "1.6.0",
                "description": "notes",
            }
        )

        assert manifest.checksums[STATIC] == {"i.html": "c2"}
        assert manifest.release_name == "v7"
        assert manifest.runtime_version == "1.6.0"
        assert manifest.description == "notes"
        assert manifest.file_count() == 2

    def test_from_dict_legacy_flat_maps(self):
        """Flat path maps belong to the executable category."""
        manifest = ReleaseManifest.from_dict(
            {"checksums": {"main.js": "c1"}, "userFiles": {"main.js": "v1"}}
        )

        assert manifest.checksums[EXECUTABLE] == {"main.js": "c1"}
        assert manifest.versions[EXECUTABLE] == {"main.js": "v1"}
        assert manifest.checksums[STATIC] == {}

    def test_from_dict_folder_names_and_encoded_maps(self):
        manifest = ReleaseManifest.from_dict(
            {
                "checksums": json.dumps({"cloud": {"a.js": "c1"}, "public": {"b.css": "c2"}}),
                "versions": {"cloud": {"a.js": "v1"}, "public": {"b.css": "v2"}},
            }
        )

        assert manifest.checksums == {EXECUTABLE: {"a.js": "c1"}, STATIC: {"b.css": "c2"}}
        assert manifest.versions[STATIC] == {"b.css": "v2"}

    def test_from_dict_null_category(self):
        """An empty category sent as null does not turn the map flat."""
        manifest = ReleaseManifest.from_dict(
            {
                "checksums": {EXECUTABLE: {"main.js": "abc"}, STATIC: None},
                "versions": {EXECUTABLE: {"main.js": "v1"}, STATIC: None},
            }
        )

        assert manifest.checksums == {EXECUTABLE: {"main.js": "abc"}, STATIC: {}}
        assert manifest.versions == {EXECUTABLE: {"main.js": "v1"}, STATIC: {}}

    def test_null_category_round_trip_is_unchanged(self):
        """A release parsed from a null category compares equal to its source."""
        local = ReleaseManifest(
            checksums={EXECUTABLE: {"main.js": "abc"}},
            versions={EXECUTABLE: {"main.js": "v1"}},
        )
        wire = local.to_dict()
        wire["checksums"][STATIC] = None
        wire["versions"][STATIC] = None

        assert ReleaseManifest.from_dict(wire).same_content(local)

    def test_from_dict_invalid_category_map(self):
        with pytest.raises(ValueError):
            ReleaseManifest.from_dict({"checksums": {EXECUTABLE: ["main.js"]}})

    def test_from_dict_none(self):
        assert ReleaseManifest.from_dict(None).is_empty()

    def test_from_dict_invalid_map(self):
        with pytest.raises(ValueError):
            ReleaseManifest.from_dict({"checksums": ["a.js"]})

    def test_same_content_ignores_metadata(self):
        a = ReleaseManifest(
            checksums={EXECUTABLE: {"a.js": "c1"}},
            versions={EXECUTABLE: {"a.js": "v1"}},
            runtime_version="1.0",
            release_name="v1",
        )
        b = a.copy()
        b.release_name = "v2"
        b.description = "other"

        assert a.same_content(b)

        b.runtime_version = "2.0"
        assert not a.same_content(b)

    def test_copy_is_deep(self):
        a = ReleaseManifest(checksums={EXECUTABLE: {"a.js": "c1"}})
        b = a.copy()
        b.checksums[EXECUTABLE]["a.js"] = "changed"
        assert a.checksums[EXECUTABLE]["a.js"] == "c1"

    def test_records(self):
        manifest = ReleaseManifest(
            checksums={EXECUTABLE: {"b.js": "c2", "a.js": "c1"}},
            versions={EXECUTABLE: {"a.js": "v1"}},
        )

        assert manifest.records(EXECUTABLE) == [
            FileRecord(path="a.js", checksum="c1", version="v1"),
            FileRecord(path="b.js", checksum="c2", version=""),
        ]


class TestLogModels:
    """Test LogCursor and LogLine."""

    def test_cursor_json(self):
        cursor = LogCursor("2024-05-01T10:00:00.000Z")
        assert cursor.to_json() == '{"__type":"Date","iso":"2024-05-01T10:00:00.000Z"}'

    def test_cursor_from_plain_string(self):
        assert LogCursor.from_dict("2024-05-01") == LogCursor("2024-05-01")

    def test_line_from_dict(self):
        line = LogLine.from_dict(
            {"timestamp": {"__type": "Date", "iso": "2024-05-01"}, "message": "hello"}
        )
        assert line.timestamp == LogCursor("2024-05-01")
        assert line.message == "hello"


class TestReleaseSummary:
    """Test ReleaseSummary parsing."""

    def test_from_dict_with_files(self):
        summary = ReleaseSummary.from_dict(
            {
                "version": 3,
                "description": "notes",
                "timestamp": "2024-05-01",
                "userFiles": {"cloud": {"b.js": "v2", "a.js": "v1"}, "public": {}},
            }
        )

        assert summary.version == "3"
        assert summary.files == {EXECUTABLE: ["a.js", "b.js"], STATIC: []}

    def test_from_dict_without_files(self):
        summary = ReleaseSummary.from_dict({"version": "v1"})
        assert summary.files == {}
        assert summary.description == ""
