"""Cross-module coverage report generators.

Functions:
    generate_report(graph, root, options)              -> ReportResult
    get_closure(graph, root, scopes, transitive)       -> dict
    get_coverage_report(graph, root, options)          -> dict

``generate_report`` runs the whole pipeline: resolve the dependencies of
the root module, merge root and dependencies into one report, write it and
optionally pretty-print it. The two ``get_*`` functions wrap the results
into JSON-ready dicts for the CLI.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AbstractSet

from reactor_coverage.config import ReportOptions
from reactor_coverage.models import ModuleGraph, ModuleRef, Scope
from reactor_coverage.reports.aggregate import ReportAggregator
from reactor_coverage.reports.errors import ReportError, SkipReport
from reactor_coverage.reports.output import reformat, write_raw
from reactor_coverage.resolver import DependencyResolver

logger = logging.getLogger(__name__)


@dataclass
class ReportResult:
    path: Path | None = None
    bundles: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.path is None


# --------------------------------------------------------------------------- #
# Pipeline
# --------------------------------------------------------------------------- #

def generate_report(graph: ModuleGraph, root: ModuleRef, options: ReportOptions) -> ReportResult:
    """Write the coverage report of *root* and its workspace dependencies.

    Returns a skipped result (no path) when ``options.skip`` is set or the
    execution data file does not exist; no file is created in that case.

    Raises:
        ReportError: for any failure, with the original exception as cause.
    """
    if options.skip:
        logger.info("Skipping coverage report for %s", root.key)
        return ReportResult()

    modules = DependencyResolver(graph).closure(root, options.scopes, options.transitive)
    aggregator = ReportAggregator(options.exec_file, options.output)

    try:
        group = aggregator.new_report()
    except SkipReport as exc:
        logger.info("%s; skipping coverage report for %s", exc, root.key)
        return ReportResult()

    try:
        for module in modules:
            aggregator.add_module(
                group, module, options.includes, options.excludes, options.source_encoding,
            )
        aggregator.finish(group)
    except (ReportError, OSError) as exc:
        group.abort()
        raise ReportError(f"Failed to convert to XML: {exc}") from exc

    path = write_raw(group)
    if options.pretty:
        reformat(path, options.source_encoding, delete_raw=options.delete_raw)
    return ReportResult(path=path, bundles=list(group.bundle_names))


# --------------------------------------------------------------------------- #
# JSON views
# --------------------------------------------------------------------------- #

def get_closure(
    graph: ModuleGraph,
    root: ModuleRef,
    scopes: AbstractSet[Scope],
    transitive: bool,
) -> dict:
    """Return the modules merged into the report of *root*, root first."""
    modules = DependencyResolver(graph).closure(root, scopes, transitive)
    return {
        "report_type": "closure",
        "module": root.key,
        "scopes": sorted(s.value for s in scopes),
        "transitive": transitive,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "modules": [m.key for m in modules],
    }


def get_coverage_report(graph: ModuleGraph, root: ModuleRef, options: ReportOptions) -> dict:
    """Run :func:`generate_report` and summarise the outcome."""
    result = generate_report(graph, root, options)
    return {
        "report_type": "coverage_xml",
        "module": root.key,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "skipped": result.skipped,
        "output": str(result.path) if result.path else None,
        "bundles": result.bundles,
    }
