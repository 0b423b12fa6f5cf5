"""Aggregation of several module bundles into one report group.

Usage:
    aggregator = ReportAggregator(exec_file, xml_file)
    group = aggregator.new_report()                 # raises SkipReport without data
    for module in modules:                          # root first, then dependencies
        aggregator.add_module(group, module, includes, excludes, "UTF-8")
    aggregator.finish(group)                        # raw file complete on disk
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Sequence, TextIO

from reactor_coverage.models import ModuleRef
from reactor_coverage.reports.analysis import BundleCoverage, ExecutionData, analyze_module
from reactor_coverage.reports.errors import ReportError, ReportStateError, SkipReport
from reactor_coverage.reports.xml_writer import XMLReportWriter

logger = logging.getLogger(__name__)

#: Name of the top-level group (the ``<report>`` element)
DEFAULT_REPORT_NAME = "XML"

#: The raw report is always written as UTF-8
RAW_ENCODING = "UTF-8"


class GroupState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    ABORTED = "aborted"


class ReportGroup:
    """The report under construction: one group, many module bundles.

    Bundles can only be added while the group is OPEN. ``close`` moves it to
    CLOSED exactly once; only a CLOSED group may be handed to the output
    stage. ``abort`` discards the partially written raw file.
    """

    def __init__(
        self,
        name: str,
        path: Path,
        stream: TextIO,
        writer: XMLReportWriter,
        execution_data: ExecutionData,
    ) -> None:
        self.name = name
        self.path = path
        self.execution_data = execution_data
        self.bundle_names: list[str] = []
        self._stream = stream
        self._writer = writer
        self._state = GroupState.OPEN

    @property
    def state(self) -> GroupState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is GroupState.CLOSED

    def add_bundle(self, bundle: BundleCoverage) -> None:
        if self._state is not GroupState.OPEN:
            raise ReportStateError(
                f"Cannot add bundle '{bundle.name}': report group is {self._state.value}."
            )
        self._writer.visit_bundle(bundle)
        self.bundle_names.append(bundle.name)

    def close(self) -> None:
        if self._state is not GroupState.OPEN:
            raise ReportStateError(f"Cannot finish report group: it is {self._state.value}.")
        self._writer.visit_end()
        self._stream.close()
        self._state = GroupState.CLOSED

    def abort(self) -> None:
        """Close the stream and remove the incomplete raw file."""
        if self._state is not GroupState.OPEN:
            return
        self._state = GroupState.ABORTED
        self._stream.close()
        self.path.unlink(missing_ok=True)
        logger.debug("Removed incomplete report %s", self.path)


class ReportAggregator:
    """Merges execution data with the sources of several modules."""

    def __init__(self, execution_data_path: Path, output_path: Path) -> None:
        self.execution_data_path = Path(execution_data_path)
        self.output_path = Path(output_path)

    def new_report(self, name: str = DEFAULT_REPORT_NAME) -> ReportGroup:
        """Load the execution data and open the top-level group.

        Raises:
            SkipReport:    when the execution data file does not exist.
            AnalysisError: when the execution data cannot be read.
            ReportError:   when the output file cannot be created.
        """
        if not self.execution_data_path.is_file():
            logger.debug("Not running. No execution data found.")
            raise SkipReport(f"No execution data found at '{self.execution_data_path}'")

        execution_data = ExecutionData.load(self.execution_data_path)

        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            stream = self.output_path.open("w", encoding=RAW_ENCODING, newline="\n")
        except OSError as exc:
            raise ReportError(f"Failed to create report file '{self.output_path}': {exc}") from exc

        writer = XMLReportWriter(stream, RAW_ENCODING)
        group = ReportGroup(name, self.output_path, stream, writer, execution_data)
        try:
            writer.visit_group(name)
        except OSError as exc:
            group.abort()
            raise ReportError(f"Failed to write report file '{self.output_path}': {exc}") from exc
        return group

    def add_module(
        self,
        group: ReportGroup,
        module: ModuleRef,
        includes: Sequence[str] | None = None,
        excludes: Sequence[str] | None = None,
        source_encoding: str = "UTF-8",
    ) -> None:
        """Analyse *module* and add its bundle to *group*."""
        if group.state is not GroupState.OPEN:
            raise ReportStateError(
                f"Cannot add module '{module.key}': report group is {group.state.value}."
            )
        bundle = analyze_module(module, group.execution_data, includes, excludes, source_encoding)
        group.add_bundle(bundle)
        logger.info("Added %s to report '%s'", module.key, group.name)

    def finish(self, group: ReportGroup) -> None:
        """Close *group*; the raw report file is complete afterwards."""
        group.close()
        logger.info("Wrote raw report %s (%d bundles)", group.path, len(group.bundle_names))
