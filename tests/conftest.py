"""Shared fixtures: a three-module workspace with recorded coverage data."""

from dataclasses import dataclass
from pathlib import Path

import pytest
from coverage import CoverageData

from reactor_coverage.config import ReportOptions
from reactor_coverage.models import (
    DependencyEdge,
    ModuleCoordinates,
    ModuleGraph,
    ModuleRef,
    Scope,
)

GROUP = "com.example"
VERSION = "1.0.0"

MAIN_SOURCE = """\
from core_pkg.calc import add


def run():
    return add(1, 2)
"""

CALC_SOURCE = """\
def add(a, b):
    return a + b


def sub(a, b):
    return a - b
"""

TEXT_SOURCE = """\
def shout(s):
    return s.upper()
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def coords(artifact: str, group: str = GROUP, version: str = VERSION) -> ModuleCoordinates:
    return ModuleCoordinates(group, artifact, version)


def edge(artifact: str, scope: Scope = Scope.COMPILE, **kwargs) -> DependencyEdge:
    return DependencyEdge(coords(artifact, **kwargs), scope)


def module(artifact: str, *edges: DependencyEdge, root: Path | None = None) -> ModuleRef:
    return ModuleRef(
        coordinates=coords(artifact),
        source_root=root or Path("/nonexistent") / artifact,
        dependencies=tuple(edges),
    )


def write_file(path: Path, content: str, encoding: str = "utf-8") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding=encoding)
    return path


def write_line_data(data_file: Path, lines: dict[Path, list[int]]) -> Path:
    data_file.parent.mkdir(parents=True, exist_ok=True)
    if not lines:
        # an empty data set would never create the database file
        lines = {data_file.parent / "unrelated.py": [1]}
    data = CoverageData(basename=str(data_file))
    data.add_lines({str(p.resolve()): nums for p, nums in lines.items()})
    data.write()
    return data_file


def write_arc_data(data_file: Path, arcs: dict[Path, list[tuple[int, int]]]) -> Path:
    data_file.parent.mkdir(parents=True, exist_ok=True)
    data = CoverageData(basename=str(data_file))
    data.add_arcs({str(p.resolve()): pairs for p, pairs in arcs.items()})
    data.write()
    return data_file


# ---------------------------------------------------------------------------
# Workspace fixture
# ---------------------------------------------------------------------------

@dataclass
class Workspace:
    root: Path
    graph: ModuleGraph
    app: ModuleRef
    core: ModuleRef
    util: ModuleRef
    exec_file: Path
    output: Path

    def options(self, **overrides) -> ReportOptions:
        values = {"exec_file": self.exec_file, "output": self.output}
        values.update(overrides)
        return ReportOptions(**values)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """app -compile-> core -compile-> util -test-> app, plus an external library.

    Recorded lines: app fully covered, core.sub never called, util.shout
    defined but never called.
    """
    app_root = tmp_path / "app" / "src"
    core_root = tmp_path / "core" / "src"
    util_root = tmp_path / "util" / "src"

    write_file(app_root / "app_pkg" / "__init__.py", "")
    main = write_file(app_root / "app_pkg" / "main.py", MAIN_SOURCE)
    calc = write_file(core_root / "core_pkg" / "calc.py", CALC_SOURCE)
    text = write_file(util_root / "util_pkg" / "text.py", TEXT_SOURCE)

    app = module(
        "app",
        edge("core"),
        edge("requests", group="org.psf", version="2.31.0"),
        root=app_root,
    )
    core = module("core", edge("util"), root=core_root)
    util = module("util", edge("app", Scope.TEST), root=util_root)

    exec_file = write_line_data(tmp_path / "build" / ".coverage", {
        main: [1, 4, 5],
        calc: [1, 2, 5],
        text: [1],
    })

    return Workspace(
        root=tmp_path,
        graph=ModuleGraph([app, core, util]),
        app=app,
        core=core,
        util=util,
        exec_file=exec_file,
        output=tmp_path / "build" / "reports" / "coverage.xml",
    )
