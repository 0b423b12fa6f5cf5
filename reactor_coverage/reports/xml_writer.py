"""Raw XML report writer.

Writes the JaCoCo report grammar as a visitor, one call per step:

    writer = XMLReportWriter(stream)
    writer.visit_group("XML")          # opens <report name="XML">
    writer.visit_bundle(bundle)        # one <group> per module, in call order
    writer.visit_end()                 # report totals, closes the document

The output is compact (no indentation) and byte-stable: elements and
attributes are always written in the same order.
"""

from enum import Enum
from typing import TextIO
from xml.sax.saxutils import escape

from reactor_coverage.reports.analysis import (
    COUNTER_TYPES,
    BundleCoverage,
    Counter,
    PackageCoverage,
    SourceFileCoverage,
)
from reactor_coverage.reports.errors import ReportStateError

DOCTYPE_PUBLIC_ID = "-//JACOCO//DTD Report 1.0//EN"
DOCTYPE_SYSTEM_ID = "report.dtd"
DOCTYPE = f'<!DOCTYPE report PUBLIC "{DOCTYPE_PUBLIC_ID}" "{DOCTYPE_SYSTEM_ID}">'

_ATTR_ENTITIES = {'"': "&quot;", "\n": "&#10;", "\r": "&#13;", "\t": "&#9;"}


class _State(Enum):
    NEW = "new"
    OPEN = "open"
    ENDED = "ended"


def _attrs(attributes: list[tuple[str, object]]) -> str:
    return "".join(f' {name}="{escape(str(value), _ATTR_ENTITIES)}"' for name, value in attributes)


class XMLReportWriter:
    """Stateful visitor that serialises bundles to *stream*."""

    def __init__(self, stream: TextIO, encoding: str = "UTF-8") -> None:
        self._stream = stream
        self._encoding = encoding
        self._state = _State.NEW
        self._totals: dict[str, Counter] = {name: Counter() for name in COUNTER_TYPES}

    # ------------------------------------------------------------------
    # Visitor interface
    # ------------------------------------------------------------------

    def visit_group(self, name: str) -> None:
        """Write the document prolog and open the ``<report>`` root."""
        if self._state is not _State.NEW:
            raise ReportStateError("The report root has already been opened.")
        self._stream.write(f'<?xml version="1.0" encoding="{self._encoding}" standalone="yes"?>')
        self._stream.write(DOCTYPE)
        self._start("report", [("name", name)])
        self._state = _State.OPEN

    def visit_bundle(self, bundle: BundleCoverage) -> None:
        """Write one module bundle as a ``<group>`` of the report."""
        self._require_open("add a bundle")
        self._start("group", [("name", bundle.name)])
        for package in bundle.packages:
            self._write_package(package)
        counters = bundle.counters
        self._write_counters(counters)
        self._end("group")
        for name, counter in counters.items():
            self._totals[name] = self._totals[name] + counter

    def visit_end(self) -> None:
        """Write the report totals and close the document."""
        self._require_open("end the report")
        self._write_counters(self._totals)
        self._end("report")
        self._stream.flush()
        self._state = _State.ENDED

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_open(self, action: str) -> None:
        if self._state is _State.NEW:
            raise ReportStateError(f"Cannot {action}: the report root is not open.")
        if self._state is _State.ENDED:
            raise ReportStateError(f"Cannot {action}: the report has already ended.")

    def _start(self, tag: str, attributes: list[tuple[str, object]]) -> None:
        self._stream.write(f"<{tag}{_attrs(attributes)}>")

    def _end(self, tag: str) -> None:
        self._stream.write(f"</{tag}>")

    def _empty(self, tag: str, attributes: list[tuple[str, object]]) -> None:
        self._stream.write(f"<{tag}{_attrs(attributes)}/>")

    def _write_counters(self, counters: dict[str, Counter]) -> None:
        # Counters without any items are omitted
        for name in COUNTER_TYPES:
            counter = counters.get(name)
            if counter is None or counter.total == 0:
                continue
            self._empty("counter", [
                ("type", name), ("missed", counter.missed), ("covered", counter.covered),
            ])

    def _write_package(self, package: PackageCoverage) -> None:
        self._start("package", [("name", package.name)])
        for source in package.files:
            self._write_class(source)
        for source in package.files:
            self._write_sourcefile(source)
        self._write_counters(package.counters)
        self._end("package")

    def _write_class(self, source: SourceFileCoverage) -> None:
        self._start("class", [("name", source.class_name), ("sourcefilename", source.name)])
        self._write_counters(source.counters)
        self._end("class")

    def _write_sourcefile(self, source: SourceFileCoverage) -> None:
        self._start("sourcefile", [("name", source.name)])
        for line in source.lines:
            self._empty("line", [
                ("nr", line.nr), ("mi", line.mi), ("ci", line.ci), ("mb", line.mb), ("cb", line.cb),
            ])
        self._write_counters(source.counters)
        self._end("sourcefile")
