"""Coverage analysis of one workspace module.

Functions:
    find_class_files(root, includes, excludes)                          -> list[Path]
    analyze_module(module, execution_data, includes, excludes, encoding) -> BundleCoverage

Execution data is a coverage.py data file. Statements and branch exits are
discovered with coverage's own Python parser, so the line and branch
numbers match what ``coverage report`` prints for the same data.
"""

import logging
import os
import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from coverage import CoverageData
from coverage.exceptions import CoverageException, NotPython
from coverage.parser import PythonParser

from reactor_coverage.models import ModuleRef
from reactor_coverage.reports.errors import AnalysisError

logger = logging.getLogger(__name__)

#: Same default exclusion as coverage.py
EXCLUDE_REGEX = r"#\s*(pragma|PRAGMA)[:\s]?\s*(no|NO)\s*(cover|COVER)"

#: Counter types written to the report, in report order
COUNTER_TYPES: tuple[str, ...] = ("BRANCH", "LINE", "CLASS")


# --------------------------------------------------------------------------- #
# Coverage model
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class Counter:
    missed: int = 0
    covered: int = 0

    @property
    def total(self) -> int:
        return self.missed + self.covered

    def __add__(self, other: "Counter") -> "Counter":
        return Counter(self.missed + other.missed, self.covered + other.covered)


def merge_counters(nodes: Iterable) -> dict[str, Counter]:
    """Sum the ``counters`` of every node, per counter type."""
    totals = {name: Counter() for name in COUNTER_TYPES}
    for node in nodes:
        for name, counter in node.counters.items():
            totals[name] = totals[name] + counter
    return totals


@dataclass(frozen=True)
class LineCoverage:
    """One executable line. ``mi``/``ci`` are missed/covered statements,
    ``mb``/``cb`` missed/covered branch exits."""

    nr: int
    mi: int
    ci: int
    mb: int = 0
    cb: int = 0


@dataclass
class SourceFileCoverage:
    name: str
    package: str
    lines: list[LineCoverage] = field(default_factory=list)

    @property
    def class_name(self) -> str:
        stem = self.name[:-3] if self.name.endswith(".py") else self.name
        return f"{self.package}/{stem}" if self.package else stem

    @property
    def counters(self) -> dict[str, Counter]:
        covered = sum(1 for line in self.lines if line.ci > 0)
        missed = len(self.lines) - covered
        return {
            "BRANCH": Counter(
                sum(line.mb for line in self.lines),
                sum(line.cb for line in self.lines),
            ),
            "LINE": Counter(missed, covered),
            "CLASS": Counter(0, 1) if covered else Counter(1, 0),
        }


@dataclass
class PackageCoverage:
    name: str
    files: list[SourceFileCoverage] = field(default_factory=list)

    @property
    def counters(self) -> dict[str, Counter]:
        return merge_counters(self.files)


@dataclass
class BundleCoverage:
    name: str
    packages: list[PackageCoverage] = field(default_factory=list)

    @property
    def counters(self) -> dict[str, Counter]:
        return merge_counters(self.packages)


# --------------------------------------------------------------------------- #
# Execution data
# --------------------------------------------------------------------------- #

def _normalize(path: str) -> str:
    return os.path.normcase(os.path.realpath(path))


class ExecutionData:
    """Read-only view of a coverage.py data file."""

    def __init__(self, data: CoverageData) -> None:
        self._data = data
        self._files = {_normalize(f): f for f in data.measured_files()}
        self.has_arcs = data.has_arcs()

    @classmethod
    def load(cls, path: Path) -> "ExecutionData":
        """Read the data file at *path*.

        Raises:
            AnalysisError: if the file is not readable coverage data.
        """
        data = CoverageData(basename=str(path))
        try:
            data.read()
            execution_data = cls(data)
        except (CoverageException, OSError) as exc:
            raise AnalysisError(f"Failed to read execution data '{path}': {exc}") from exc
        logger.debug(
            "Loaded execution data from %s (%d measured files, branch data: %s)",
            path, len(execution_data), execution_data.has_arcs,
        )
        return execution_data

    def __len__(self) -> int:
        return len(self._files)

    def lines(self, path: Path) -> set[int] | None:
        """Executed line numbers of *path*, or None when it was never measured."""
        recorded = self._files.get(_normalize(str(path)))
        if recorded is None:
            return None
        return set(self._data.lines(recorded) or ())

    def arcs(self, path: Path) -> set[tuple[int, int]] | None:
        """Executed arcs of *path*, or None when it was never measured."""
        recorded = self._files.get(_normalize(str(path)))
        if recorded is None:
            return None
        return set(self._data.arcs(recorded) or ())


# --------------------------------------------------------------------------- #
# Class file selection
# --------------------------------------------------------------------------- #

def _pattern_to_regex(pattern: str) -> re.Pattern:
    """Compile an Ant-style pattern: ``**`` spans directories, ``*`` and ``?`` do not."""
    pattern = pattern.strip().replace("\\", "/").lstrip("/")
    if pattern.endswith("/"):
        pattern += "**"
    segments = pattern.split("/")
    regex = ""
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            regex += ".*" if last else "(?:.*/)?"
            continue
        for char in segment:
            if char == "*":
                regex += "[^/]*"
            elif char == "?":
                regex += "[^/]"
            else:
                regex += re.escape(char)
        if not last:
            regex += "/"
    return re.compile(regex)


def _matches_any(relative: str, patterns: Sequence[re.Pattern]) -> bool:
    return any(p.fullmatch(relative) for p in patterns)


def find_class_files(
    root: Path,
    includes: Sequence[str] | None = None,
    excludes: Sequence[str] | None = None,
) -> list[Path]:
    """Return the ``*.py`` files under *root* selected by the glob filters.

    Patterns are matched against the POSIX path relative to *root*. No
    includes means everything; no excludes means nothing is excluded.
    """
    include_res = [_pattern_to_regex(p) for p in includes or ["**"]]
    exclude_res = [_pattern_to_regex(p) for p in excludes or []]

    selected: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        if not path.is_file():
            continue
        relative = path.relative_to(root).as_posix()
        if not _matches_any(relative, include_res):
            continue
        if _matches_any(relative, exclude_res):
            continue
        selected.append(path)
    return selected


# --------------------------------------------------------------------------- #
# Analysis
# --------------------------------------------------------------------------- #

def _branch_stats(
    parser: PythonParser,
    executed_arcs: set[tuple[int, int]],
) -> dict[int, tuple[int, int]]:
    """Return ``{line: (missed_exits, covered_exits)}`` for every branch line."""
    exits: dict[int, set[int]] = defaultdict(set)
    for start, end in parser.arcs():
        if start < 0 or start in parser.excluded or end in parser.excluded:
            continue
        exits[start].add(end)

    stats: dict[int, tuple[int, int]] = {}
    for start, ends in exits.items():
        if len(ends) < 2:
            continue
        taken = sum(1 for end in ends if (start, end) in executed_arcs)
        stats[start] = (len(ends) - taken, taken)
    return stats


def _analyze_file(
    path: Path,
    package: str,
    execution_data: ExecutionData,
    encoding: str,
) -> SourceFileCoverage:
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError, LookupError) as exc:
        raise AnalysisError(f"Failed to read source file '{path}' as {encoding}: {exc}") from exc

    parser = PythonParser(text=text, filename=str(path), exclude=EXCLUDE_REGEX)
    try:
        parser.parse_source()
    except (NotPython, SyntaxError) as exc:
        raise AnalysisError(f"Failed to parse source file '{path}': {exc}") from exc

    executed = parser.translate_lines(execution_data.lines(path) or ())
    branches: dict[int, tuple[int, int]] = {}
    if execution_data.has_arcs:
        executed_arcs = parser.translate_arcs(execution_data.arcs(path) or ())
        branches = _branch_stats(parser, executed_arcs)

    lines = []
    for nr in sorted(parser.statements):
        hit = nr in executed
        mb, cb = branches.get(nr, (0, 0))
        lines.append(LineCoverage(nr=nr, mi=0 if hit else 1, ci=1 if hit else 0, mb=mb, cb=cb))
    return SourceFileCoverage(name=path.name, package=package, lines=lines)


def analyze_module(
    module: ModuleRef,
    execution_data: ExecutionData,
    includes: Sequence[str] | None = None,
    excludes: Sequence[str] | None = None,
    encoding: str = "UTF-8",
) -> BundleCoverage:
    """Build the coverage bundle of *module*, named by its artifact id.

    A module whose source root does not exist yields an empty bundle.
    Files without executable statements are left out.

    Raises:
        AnalysisError: when a selected source file cannot be read or parsed.
    """
    bundle = BundleCoverage(name=module.artifact_id)
    root = module.source_root
    if not root.is_dir():
        logger.info("Source root %s of %s does not exist; adding an empty bundle", root, module.key)
        return bundle

    packages: dict[str, PackageCoverage] = {}
    for path in find_class_files(root, includes, excludes):
        package = path.parent.relative_to(root).as_posix()
        if package == ".":
            package = ""
        source = _analyze_file(path, package, execution_data, encoding)
        if not source.lines:
            continue
        packages.setdefault(package, PackageCoverage(name=package)).files.append(source)

    bundle.packages = [packages[name] for name in sorted(packages)]
    logger.debug(
        "Analysed %s: %d packages, %d source files",
        module.key, len(bundle.packages), sum(len(p.files) for p in bundle.packages),
    )
    return bundle
