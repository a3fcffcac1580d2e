"""Settings and helpers shared by the user interfaces."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Pattern, Set

logger = logging.getLogger(__name__)

ShouldDirBeIgnored = Callable[[str, str], bool]

# binary (IEC) multiples
KI = float(1 << 10)
MI = float(1 << 20)
GI = float(1 << 30)
TI = float(1 << 40)
PI = float(1 << 50)
EI = float(1 << 60)

# decimal (SI) multiples
K = 1e3
M = 1e6
G = 1e9
T = 1e12
P = 1e15
E = 1e18


@dataclass
class CurrentProgress:
    """Progress of a running analysis."""

    current_item_name: str = ""
    item_count: int = 0
    total_size: int = 0


def create_ignore_pattern(paths: List[str]) -> Pattern[str]:
    """Combine path patterns into one anchored regular expression.

    Raises ``re.error`` when any of the patterns is invalid.
    """
    for path in paths:
        re.compile(path)
    return re.compile("^" + "|".join(f"({path})" for path in paths) + "$")


def format_number(n: int) -> str:
    """Return the number with a comma as thousands separator."""
    digits = str(n)
    head = len(digits) % 3
    groups = [digits[:head]] if head else []
    rest = digits[head:]
    groups.extend(rest[start:start + 3] for start in range(0, len(rest), 3))
    return ",".join(groups)


def _read_lines(path: str) -> List[str]:
    lines = []
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            line = line[:-1] if line.endswith("\n") else line
            line = line[:-1] if line.endswith("\r") else line
            lines.append(line)
    return lines


@dataclass
class BaseUI:
    """State common to all user interfaces: analyzer, ignore rules and display options."""

    analyzer: Any = None
    ignore_dir_paths: Set[str] = field(default_factory=set)
    ignore_dir_path_patterns: Optional[Pattern[str]] = None
    ignore_hidden: bool = False
    use_colors: bool = False
    use_si_prefix: bool = False
    show_progress: bool = False
    show_apparent_size: bool = False
    show_relative_size: bool = False
    const_gc: bool = False

    def set_follow_symlinks(self, value: bool) -> None:
        """Tell the analyzer whether symlinks to files should be followed."""
        self.analyzer.set_follow_symlinks(value)

    def set_ignore_dir_paths(self, paths: List[str]) -> None:
        """Ignore directories with exactly these absolute paths."""
        logger.info("Ignoring dirs %s", ", ".join(paths))
        self.ignore_dir_paths = set(paths)

    def set_ignore_dir_patterns(self, paths: List[str]) -> None:
        """Ignore directories whose path matches one of the patterns."""
        logger.info("Ignoring dir patterns %s", ", ".join(paths))
        self.ignore_dir_path_patterns = create_ignore_pattern(paths)

    def set_ignore_from_file(self, ignore_file: str) -> None:
        """Read ignore patterns, one per line, from a file."""
        logger.info("Reading ignoring dir patterns from file '%s'", ignore_file)
        self.ignore_dir_path_patterns = create_ignore_pattern(_read_lines(ignore_file))

    def set_ignore_hidden(self, value: bool) -> None:
        """Set whether directories starting with a dot are ignored."""
        logger.info("Ignoring hidden dirs")
        self.ignore_hidden = value

    def should_dir_be_ignored(self, name: str, path: str) -> bool:
        ignored = path in self.ignore_dir_paths
        if ignored:
            logger.info("Directory %s ignored", path)
        return ignored

    def should_dir_be_ignored_using_pattern(self, name: str, path: str) -> bool:
        ignored = bool(self.ignore_dir_path_patterns.search(path))
        if ignored:
            logger.info("Directory %s ignored", path)
        return ignored

    def is_hidden_dir(self, name: str, path: str) -> bool:
        ignored = name.startswith(".")
        if ignored:
            logger.info("Directory %s ignored", path)
        return ignored

    def create_ignore_func(self) -> ShouldDirBeIgnored:
        """Return a predicate deciding whether a directory is skipped."""
        checks: List[ShouldDirBeIgnored] = []
        if self.ignore_dir_paths:
            checks.append(self.should_dir_be_ignored)
        if self.ignore_dir_path_patterns is not None:
            checks.append(self.should_dir_be_ignored_using_pattern)
        if self.ignore_hidden:
            checks.append(self.is_hidden_dir)

        if not checks:
            return lambda name, path: False
        if len(checks) == 1:
            return checks[0]
        return lambda name, path: any(check(name, path) for check in checks)