"""Workspace configuration loading and validation.

Usage:
    config = load("workspace.yaml")          # raises ConfigError on bad config
    module = config.resolve_module("app")    # ModuleRef for artifact "app"
    generate_template("workspace.yaml")      # writes example file to disk

The workspace file describes the modules of the build (the module graph)
and the options of the coverage report. Relative paths are resolved
against the directory holding the workspace file.
"""

import codecs
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from reactor_coverage.models import (
    DependencyEdge,
    DuplicateModuleError,
    ModuleCoordinates,
    ModuleGraph,
    ModuleRef,
    Scope,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class ReportOptions:
    skip: bool = False
    exec_file: Path = Path("build/coverage/.coverage")
    output: Path = Path("build/coverage/coverage.xml")
    source_encoding: str = "UTF-8"
    includes: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    scopes: frozenset[Scope] = field(default_factory=lambda: frozenset(Scope))
    transitive: bool = True
    pretty: bool = True
    delete_raw: bool = True


@dataclass
class Config:
    graph: ModuleGraph
    report: ReportOptions = field(default_factory=ReportOptions)

    def resolve_module(self, name: str) -> ModuleRef:
        """Return the module for a key (``group:artifact:version``) or artifact id."""
        return self.graph.get(name)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = "workspace.yaml") -> Config:
    """Load and validate a workspace file.

    Environment variables REACTOR_COVERAGE_SKIP, REACTOR_COVERAGE_EXEC_FILE
    and REACTOR_COVERAGE_OUTPUT override the ``report`` section.

    Raises:
        ConfigError: if the file is missing, malformed, or describes an
                     invalid module graph.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `python -m reactor_coverage init` to generate a template."
        )

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")

    base_dir = path.resolve().parent
    errors: list[str] = []
    modules = _parse_modules(raw.get("modules"), base_dir, errors)
    report = _parse_report(raw.get("report") or {}, base_dir, errors)

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))

    try:
        graph = ModuleGraph(modules)
    except DuplicateModuleError as exc:
        raise ConfigError(f"Invalid configuration:\n  - {exc}") from exc
    return Config(graph=graph, report=report)


def _parse_coordinates(value, where: str, errors: list[str]) -> tuple[ModuleCoordinates, str | None] | None:
    """Accept ``"group:artifact:version[:scope]"`` or a mapping with those keys."""
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(":")]
        if len(parts) not in (3, 4) or not all(parts):
            errors.append(f"  - {where}: expected 'group:artifact:version[:scope]', got '{value}'")
            return None
        scope = parts[3] if len(parts) == 4 else None
        return ModuleCoordinates(*parts[:3]), scope

    if not isinstance(value, dict):
        errors.append(f"  - {where}: expected a mapping or a 'group:artifact:version' string")
        return None

    missing = [k for k in ("group", "artifact", "version") if not str(value.get(k) or "").strip()]
    if missing:
        errors.append(f"  - {where}: missing {', '.join(repr(k) for k in missing)}")
        return None
    coordinates = ModuleCoordinates(
        str(value["group"]).strip(), str(value["artifact"]).strip(), str(value["version"]).strip(),
    )
    return coordinates, value.get("scope")


def _parse_modules(raw_modules, base_dir: Path, errors: list[str]) -> list[ModuleRef]:
    if not raw_modules:
        errors.append("  - 'modules' list is empty - declare at least one module")
        return []
    if not isinstance(raw_modules, list):
        errors.append("  - 'modules' must be a list")
        return []

    modules: list[ModuleRef] = []
    for index, entry in enumerate(raw_modules):
        where = f"modules[{index}]"
        parsed = _parse_coordinates(entry, where, errors)
        if parsed is None:
            continue
        coordinates, _ = parsed
        where = f"module '{coordinates.artifact}'"

        source_root = entry.get("source_root") if isinstance(entry, dict) else None
        if not source_root:
            errors.append(f"  - {where}: 'source_root' is missing")
            continue

        edges: list[DependencyEdge] = []
        for dep_index, dep in enumerate(entry.get("dependencies") or []):
            dep_where = f"{where} dependencies[{dep_index}]"
            dep_parsed = _parse_coordinates(dep, dep_where, errors)
            if dep_parsed is None:
                continue
            dep_coordinates, raw_scope = dep_parsed
            try:
                scope = Scope.parse(raw_scope) if raw_scope else Scope.COMPILE
            except ValueError as exc:
                errors.append(f"  - {dep_where}: {exc}")
                continue
            edges.append(DependencyEdge(dep_coordinates, scope))

        modules.append(ModuleRef(
            coordinates=coordinates,
            source_root=base_dir / source_root,
            dependencies=tuple(edges),
        ))
    return modules


def _as_list(value, name: str, errors: list[str]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"  - 'report.{name}' must be a list of strings")
        return []
    return list(value)


def _as_bool(value, name: str, default: bool, errors: list[str]) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_VALUES:
            return True
        if word in _FALSE_VALUES:
            return False
    errors.append(f"  - 'report.{name}' must be true or false, got {value!r}")
    return default


def _parse_report(raw: dict, base_dir: Path, errors: list[str]) -> ReportOptions:
    if not isinstance(raw, dict):
        errors.append("  - 'report' must be a mapping")
        return ReportOptions()

    defaults = ReportOptions()
    skip_env = os.environ.get("REACTOR_COVERAGE_SKIP")
    exec_file = os.environ.get("REACTOR_COVERAGE_EXEC_FILE") or raw.get("exec_file") or defaults.exec_file
    output = os.environ.get("REACTOR_COVERAGE_OUTPUT") or raw.get("output") or defaults.output
    encoding = str(raw.get("source_encoding") or defaults.source_encoding).strip()

    try:
        codecs.lookup(encoding)
    except LookupError:
        errors.append(f"  - 'report.source_encoding': unknown encoding '{encoding}'")

    try:
        scopes = Scope.parse_all(_as_list(raw.get("scopes"), "scopes", errors))
    except ValueError as exc:
        errors.append(f"  - 'report.scopes': {exc}")
        scopes = defaults.scopes

    return ReportOptions(
        skip=skip_env.strip().lower() in _TRUE_VALUES if skip_env
        else _as_bool(raw.get("skip"), "skip", defaults.skip, errors),
        exec_file=base_dir / exec_file,
        output=base_dir / output,
        source_encoding=encoding,
        includes=_as_list(raw.get("includes"), "includes", errors),
        excludes=_as_list(raw.get("excludes"), "excludes", errors),
        scopes=scopes,
        transitive=_as_bool(raw.get("transitive"), "transitive", defaults.transitive, errors),
        pretty=_as_bool(raw.get("pretty"), "pretty", defaults.pretty, errors),
        delete_raw=_as_bool(raw.get("delete_raw"), "delete_raw", defaults.delete_raw, errors),
    )


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
report:
  exec_file: "build/coverage/.coverage"     # coverage.py data file; report is skipped if absent
  output: "build/coverage/coverage.xml"
  source_encoding: "UTF-8"
  scopes: [compile, runtime]               # omit to follow every scope
  transitive: true
  pretty: true
  delete_raw: true
  includes: []                             # Ant-style globs, e.g. "mypkg/**"
  excludes: ["**/tests/**"]

modules:
  - group: "com.example"
    artifact: "app"
    version: "1.0.0"
    source_root: "app/src"
    dependencies:
      - "com.example:core:1.0.0:compile"
      - {group: "com.example", artifact: "testkit", version: "1.0.0", scope: test}
  - group: "com.example"
    artifact: "core"
    version: "1.0.0"
    source_root: "core/src"
"""


def generate_template(output_path: str = "workspace.yaml") -> None:
    """Write a template workspace.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists.
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
