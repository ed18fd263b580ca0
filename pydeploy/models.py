"""Data models for releases, file records and log lines."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Optional

EXECUTABLE = "executable"
STATIC = "static"
CATEGORY_NAMES = (EXECUTABLE, STATIC)

# Older servers and releases name the categories after the local folders
_LEGACY_CATEGORY_NAMES = {"cloud": EXECUTABLE, "public": STATIC}


@dataclass(frozen=True)
class Category:
    """A class of deployable files sharing a folder and an endpoint."""

    name: str
    """Manifest key ("executable" or "static")"""

    directory: str
    """Folder below the project root holding the files"""

    endpoint: str
    """API endpoint files of this category are uploaded to"""

    suffixes: frozenset[str] = frozenset()
    """Allowed file extensions (empty means every file)"""

    label: str = ""
    """Human readable name used in messages"""


EXECUTABLE_CATEGORY = Category(
    name=EXECUTABLE,
    directory="cloud",
    endpoint="scripts",
    suffixes=frozenset({".js", ".ejs", ".jade"}),
    label="scripts",
)

STATIC_CATEGORY = Category(
    name=STATIC,
    directory="public",
    endpoint="hosted_files",
    label="hosting",
)

CATEGORIES = (EXECUTABLE_CATEGORY, STATIC_CATEGORY)


@dataclass
class FileRecord:
    """A file taking part in a sync cycle."""

    path: str
    """Path relative to the category folder, always with forward slashes"""

    checksum: str
    """MD5 hex digest of the content"""

    version: str = ""
    """Remote version token, set once the file is uploaded"""


def _empty_category_maps() -> dict[str, dict[str, str]]:
    return {name: {} for name in CATEGORY_NAMES}


@dataclass
class ReleaseManifest:
    """Checksums and version tokens of every file in a release."""

    checksums: dict[str, dict[str, str]] = field(default_factory=_empty_category_maps)
    """Category -> relative path -> checksum"""

    versions: dict[str, dict[str, str]] = field(default_factory=_empty_category_maps)
    """Category -> relative path -> remote version token"""

    runtime_version: str = ""
    """Runtime (SDK) version the release executes with"""

    description: str = ""
    """Optional release notes"""

    release_name: str = ""
    """Name assigned by the server when the release is published"""

    warning: str = ""
    """Warning returned by the server on publish"""

    def __post_init__(self) -> None:
        for name in CATEGORY_NAMES:
            self.checksums.setdefault(name, {})
            self.versions.setdefault(name, {})

    def records(self, category: str) -> list[FileRecord]:
        """Return the files of a category as FileRecords, sorted by path."""
        checksums = self.checksums.get(category, {})
        versions = self.versions.get(category, {})
        return [
            FileRecord(path=path, checksum=checksums[path], version=versions.get(path, ""))
            for path in sorted(checksums)
        ]

    def file_count(self) -> int:
        """Total number of files across categories."""
        return sum(len(v) for v in self.versions.values())

    def is_empty(self) -> bool:
        """True when the release holds no uploaded file at all."""
        return self.file_count() == 0

    def same_content(self, other: ReleaseManifest) -> bool:
        """Compare checksums, versions and runtime version with another release."""
        for name in CATEGORY_NAMES:
            if self.checksums.get(name, {}) != other.checksums.get(name, {}):
                return False
            if self.versions.get(name, {}) != other.versions.get(name, {}):
                return False
        return self.runtime_version == other.runtime_version

    def copy(self) -> ReleaseManifest:
        """Deep copy of the manifest."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire format used by the deploy endpoint."""
        data: dict[str, Any] = {
            "checksums": {name: dict(self.checksums[name]) for name in CATEGORY_NAMES},
            "versions": {name: dict(self.versions[name]) for name in CATEGORY_NAMES},
        }
        if self.release_name:
            data["releaseName"] = self.release_name
        if self.description:
            data["description"] = self.description
        if self.runtime_version:
            data["runtimeVersion"] = self.runtime_version
        if self.warning:
            data["warning"] = self.warning
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> ReleaseManifest:
        """Parse a manifest from the wire format.

        Accepts the categorized format as well as the legacy flat format
        where ``checksums`` / ``versions`` (or ``userFiles``) map paths
        directly. Flat maps are normalized into the executable category.

        Args:
            data: Decoded JSON object (None is treated as an empty release)

        Returns:
            ReleaseManifest instance
        """
        data = data or {}
        raw_versions = data.get("versions")
        if raw_versions is None:
            raw_versions = data.get("userFiles")
        return cls(
            checksums=_normalize_category_maps(data.get("checksums")),
            versions=_normalize_category_maps(raw_versions),
            runtime_version=data.get("runtimeVersion") or "",
            description=data.get("description") or "",
            release_name=data.get("releaseName") or "",
            warning=data.get("warning") or "",
        )


def _normalize_category_maps(raw: Any) -> dict[str, dict[str, str]]:
    maps = _empty_category_maps()
    if not raw:
        return maps
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid file map in release: {raw!r}")

    is_flat = not any(
        key in maps or key in _LEGACY_CATEGORY_NAMES for key in raw
    ) and all(isinstance(value, str) for value in raw.values())
    if is_flat:
        # Legacy flat format: a single path -> value map
        maps[EXECUTABLE] = {str(k): v for k, v in raw.items()}
        return maps

    for key, files in raw.items():
        name = _LEGACY_CATEGORY_NAMES.get(key, key)
        # An empty category may be serialized as null
        if name not in maps or files is None:
            continue
        if not isinstance(files, dict):
            raise ValueError(f"Invalid file map for category {key!r}: {files!r}")
        maps[name].update({str(k): str(v) for k, v in files.items()})
    return maps


@dataclass(frozen=True)
class LogCursor:
    """Timestamp of the newest log line seen so far."""

    iso: str
    """ISO 8601 timestamp"""

    type: str = "Date"
    """Opaque type tag echoed back to the server"""

    def to_dict(self) -> dict[str, str]:
        return {"__type": self.type, "iso": self.iso}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> LogCursor:
        if isinstance(data, dict):
            return cls(iso=str(data.get("iso", "")), type=data.get("__type") or "Date")
        # Plain timestamps are accepted as-is
        return cls(iso=str(data))


@dataclass(frozen=True)
class LogLine:
    """A single line of the remote execution log."""

    timestamp: LogCursor
    message: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogLine:
        return cls(
            timestamp=LogCursor.from_dict(data.get("timestamp")),
            message=data.get("message", ""),
        )


@dataclass
class ReleaseSummary:
    """An entry of the release history."""

    version: str
    description: str = ""
    timestamp: str = ""
    files: dict[str, list[str]] = field(default_factory=dict)
    """Category -> sorted file names deployed with the release"""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseSummary:
        files: dict[str, list[str]] = {}
        raw_files = data.get("userFiles")
        if raw_files:
            maps = _normalize_category_maps(raw_files)
            files = {name: sorted(maps[name]) for name in CATEGORY_NAMES}
        return cls(
            version=str(data.get("version", "")),
            description=data.get("description") or "",
            timestamp=data.get("timestamp") or "",
            files=files,
        )
