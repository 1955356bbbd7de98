"""
Fileset Scanner.

Ant-style include/exclude pattern matching over a directory tree:
- `*` matches within one path segment, `?` one character
- `**` matches any number of segments
- a trailing `/` is shorthand for `/**`
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Sequence, Union


logger = logging.getLogger(__name__)


DEFAULT_EXCLUDES = [
    # Editor backups
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    "**/.DS_Store",
    # CVS / SCCS / VSS
    "**/CVS",
    "**/CVS/**",
    "**/.cvsignore",
    "**/SCCS",
    "**/SCCS/**",
    "**/vssver.scc",
    # Subversion
    "**/.svn",
    "**/.svn/**",
    # Git
    "**/.git",
    "**/.git/**",
    "**/.gitattributes",
    "**/.gitignore",
    "**/.gitmodules",
    # Mercurial
    "**/.hg",
    "**/.hg/**",
    "**/.hgignore",
    "**/.hgsub",
    "**/.hgsubstate",
    "**/.hgtags",
    # Bazaar
    "**/.bzr",
    "**/.bzr/**",
    "**/.bzrignore",
]


def split_patterns(value: Optional[str]) -> List[str]:
    """Split a comma and/or space separated pattern list."""
    if not value:
        return []
    return [token for token in re.split(r"[,\s]+", value) if token]


def _segment_regex(segment: str) -> str:
    out = []
    for ch in segment:
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
    return "".join(out)


def compile_pattern(pattern: str, case_sensitive: bool = True) -> Pattern[str]:
    """Translate one Ant-style pattern into a regular expression."""
    pattern = pattern.replace("\\", "/")
    if pattern.endswith("/"):
        pattern += "**"
    pattern = pattern.lstrip("/")

    parts: List[str] = []
    segments = pattern.split("/")
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            # Zero or more whole segments
            parts.append(".*" if last else "(?:[^/]+/)*")
        else:
            parts.append(_segment_regex(segment) + ("" if last else "/"))

    regex = "".join(parts)
    # "a/**" also matches "a" itself
    if regex.endswith("/.*"):
        regex = regex[:-3] + "(?:/.*)?"
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(f"^{regex}$", flags)


@dataclass
class ScanResult:
    """Relative POSIX paths of matched entries, in scan order."""
    files: List[str] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)


class DirectoryScanner:
    """
    Scans a directory for entries matching include/exclude patterns.

    Example:
        scanner = DirectoryScanner(includes=["**/*.txt"], excludes=["tmp/"])
        result = scanner.scan("/project/docs")
    """

    def __init__(
        self,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
        case_sensitive: bool = True,
        default_excludes: bool = True,
    ):
        include_patterns = list(includes) if includes else ["**"]
        exclude_patterns = list(excludes or [])
        if default_excludes:
            exclude_patterns.extend(DEFAULT_EXCLUDES)

        self._includes = [compile_pattern(p, case_sensitive) for p in include_patterns]
        self._excludes = [compile_pattern(p, case_sensitive) for p in exclude_patterns]

    def is_selected(self, relative_path: str) -> bool:
        return (
            self._matches_any(self._includes, relative_path)
            and not self._matches_any(self._excludes, relative_path)
        )

    @staticmethod
    def _matches_any(patterns: Iterable[Pattern[str]], path: str) -> bool:
        return any(pattern.match(path) for pattern in patterns)

    def scan(self, base_dir: Union[str, Path]) -> ScanResult:
        """
        Walk `base_dir` and collect selected files and directories.

        Entries are visited in sorted order so results are deterministic.
        """
        base = Path(base_dir)
        result = ScanResult()

        for current, dirnames, filenames in os.walk(base):
            dirnames.sort()
            relative_dir = Path(current).relative_to(base).as_posix()
            prefix = "" if relative_dir == "." else relative_dir + "/"

            for dirname in dirnames:
                relative = prefix + dirname
                if self.is_selected(relative):
                    result.directories.append(relative)

            for filename in sorted(filenames):
                relative = prefix + filename
                if self.is_selected(relative):
                    result.files.append(relative)

        logger.debug(
            f"Scanned {base}: {len(result.files)} files, "
            f"{len(result.directories)} directories selected"
        )
        return result
