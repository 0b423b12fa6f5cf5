"""Exceptions raised while building and writing a coverage report."""


class ReportError(Exception):
    """Base exception for all report failures. Fatal for the current run."""


class ReportStateError(ReportError):
    """Raised when a report group or writer is used out of order."""


class AnalysisError(ReportError):
    """Raised when execution data or a module's sources cannot be analysed."""


class ReformatError(ReportError):
    """Raised when the pretty-printing pass fails. The raw copy is kept."""


class SkipReport(Exception):
    """Signals that there is nothing to report. Not a failure."""
