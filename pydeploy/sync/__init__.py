"""Sync engine for PyDeploy - upload, download, release and develop loops."""

from .checksums import compute_checksums
from .develop import ContinuousDeployer, DevelopSession
from .downloader import Downloader
from .ignore import (
    IGNORE_FILE_NAME,
    Decision,
    IgnorePatternError,
    IgnoreRule,
    LegacyRulesMatcher,
    MultiMatcher,
    PatternMatcher,
    build_matcher,
    load_ignore_file,
)
from .release import ReleaseCoordinator
from .retry import DeployRunner
from .scanner import DirectoryScanner
from .uploader import SyncResult, SyncSession, Uploader

__all__ = [
    "ReleaseCoordinator",
    "DeployRunner",
    "ContinuousDeployer",
    "DevelopSession",
    "Downloader",
    "Uploader",
    "SyncSession",
    "SyncResult",
    "DirectoryScanner",
    "compute_checksums",
    "Decision",
    "IgnorePatternError",
    "IgnoreRule",
    "LegacyRulesMatcher",
    "MultiMatcher",
    "PatternMatcher",
    "IGNORE_FILE_NAME",
    "build_matcher",
    "load_ignore_file",
]
