"""Gitignore-style pattern matching for deploy files.

A project may hold a ``.deployignore`` file at its root. Its patterns are
combined with a fixed set of legacy rules that always exclude hidden files,
``#``-prefixed files, swap files and backup files.

Patterns use the gitwildmatch syntax of gitignore, compiled with pathspec:

* blank lines and lines starting with ``#`` are skipped
* ``!pattern`` re-includes paths excluded by an earlier pattern
* ``pattern/`` only matches directories
* a leading or inner ``/`` anchors the pattern at the sync root
* a pattern matching a directory also matches everything below it
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from pathspec.patterns.gitwildmatch import GitWildMatchPattern, GitWildMatchPatternError

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".deployignore"


class Decision(enum.Enum):
    """Outcome of matching a path."""

    PASS = "pass"
    """The matcher has no opinion"""

    INCLUDE = "include"
    """The path takes part in the sync"""

    EXCLUDE = "exclude"
    """The path is skipped (directories are pruned)"""


class IgnorePatternError(ValueError):
    """A line of the ignore file could not be compiled."""

    def __init__(self, line_number: int, pattern: str, reason: str):
        super().__init__(f"line {line_number}: {pattern!r}: {reason}")
        self.line_number = line_number
        self.pattern = pattern
        self.reason = reason


class Matcher(Protocol):
    def match(self, relative_path: str, is_dir: bool) -> Decision: ...


@dataclass
class IgnoreRule:
    """A single compiled ignore pattern."""

    pattern: str
    """Pattern as written in the ignore file"""

    spec: GitWildMatchPattern
    """Compiled gitwildmatch pattern"""

    dir_only: bool = False
    """True for ``pattern/`` (directories only)"""

    @property
    def negated(self) -> bool:
        """True for ``!pattern`` (re-include)."""
        return self.spec.include is False

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        # Directories carry a trailing slash so ``pattern/`` can match them
        if is_dir and not relative_path.endswith("/"):
            relative_path += "/"
        return self.spec.regex.match(relative_path) is not None


def _check_classes(pattern: str) -> None:
    """Reject a ``[`` character class that is never closed."""
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                raise ValueError("unterminated character class")
            i = end
        i += 1


def compile_rule(pattern: str, line_number: int = 0) -> Optional[IgnoreRule]:
    """Compile one line of an ignore file.

    Args:
        pattern: Raw line
        line_number: Line number for error messages

    Returns:
        IgnoreRule, or None for blank lines and comments

    Raises:
        IgnorePatternError: If the pattern is malformed
    """
    line = pattern.rstrip("\n")
    if not line.strip() or line.startswith("#"):
        return None

    try:
        _check_classes(line)
        spec = GitWildMatchPattern(line)
    except (GitWildMatchPatternError, ValueError) as e:
        raise IgnorePatternError(line_number, line, str(e)) from e
    if spec.include is None:
        raise IgnorePatternError(line_number, line, "pattern matches nothing")

    return IgnoreRule(pattern=line, spec=spec, dir_only=line.rstrip().endswith("/"))


class PatternMatcher:
    """Matcher backed by the patterns of an ignore file.

    The last rule matching a path decides, like in gitignore.
    """

    def __init__(self, rules: list[IgnoreRule]):
        self.rules = rules

    def match(self, relative_path: str, is_dir: bool) -> Decision:
        decision = Decision.PASS
        for rule in self.rules:
            if rule.matches(relative_path, is_dir):
                decision = Decision.INCLUDE if rule.negated else Decision.EXCLUDE
        return decision


def compile_patterns(content: str) -> tuple[PatternMatcher, list[IgnorePatternError]]:
    """Compile the content of an ignore file.

    Malformed lines are skipped and returned as errors; they never abort.

    Args:
        content: Text of the ignore file

    Returns:
        Tuple of (matcher, list of errors)
    """
    rules: list[IgnoreRule] = []
    errors: list[IgnorePatternError] = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        try:
            rule = compile_rule(line, line_number)
        except IgnorePatternError as e:
            errors.append(e)
            continue
        if rule is not None:
            rules.append(rule)
    return PatternMatcher(rules), errors


class LegacyRulesMatcher:
    """Built-in rules excluding editor and hidden files.

    A path is excluded when any of its components starts with ``.`` or
    ``#``, or ends with ``.swp`` or ``~``.
    """

    def match(self, relative_path: str, is_dir: bool) -> Decision:
        for part in relative_path.split("/"):
            if (
                part.startswith(".")
                or part.startswith("#")
                or part.endswith(".swp")
                or part.endswith("~")
            ):
                return Decision.EXCLUDE
        return Decision.PASS


class MultiMatcher:
    """Chains matchers; the first one with an opinion decides."""

    def __init__(self, *matchers: Matcher):
        self.matchers = matchers

    def match(self, relative_path: str, is_dir: bool) -> Decision:
        for matcher in self.matchers:
            decision = matcher.match(relative_path, is_dir)
            if decision is not Decision.PASS:
                return decision
        return Decision.PASS


def build_matcher(content: Optional[str]) -> tuple[Matcher, list[IgnorePatternError]]:
    """Create the matcher used for deploys.

    Args:
        content: Ignore file content, or None when there is no ignore file

    Returns:
        Tuple of (matcher, list of pattern errors)
    """
    if content is None:
        return LegacyRulesMatcher(), []
    patterns, errors = compile_patterns(content)
    return MultiMatcher(patterns, LegacyRulesMatcher()), errors


def load_ignore_file(root: Path) -> Optional[str]:
    """Read ``.deployignore`` from a project root.

    Returns:
        File content, or None if the file does not exist

    Raises:
        OSError: For any failure other than a missing file
    """
    path = Path(root) / IGNORE_FILE_NAME
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"No ignore file at {path}")
        return None
