"""Persisting a finished report.

Functions:
    write_raw(group)                            -> Path
    reformat(path, encoding, delete_raw=True)   -> Path

``reformat`` moves the raw report aside to ``raw.<name>`` before touching
the original path, and removes that copy only once the pretty-printed
report has been written. If anything fails in between, the raw copy stays
on disk.
"""

import codecs
import io
import logging
import os
from pathlib import Path
from xml.dom import Node
from xml.parsers.expat import ExpatError

from defusedxml import DefusedXmlException
from defusedxml import minidom

from reactor_coverage.reports.aggregate import ReportGroup
from reactor_coverage.reports.errors import ReformatError, ReportStateError
from reactor_coverage.reports.xml_writer import DOCTYPE

logger = logging.getLogger(__name__)

RAW_PREFIX = "raw."
INDENT = "  "


# --------------------------------------------------------------------------- #
# Raw emission
# --------------------------------------------------------------------------- #

def write_raw(group: ReportGroup) -> Path:
    """Return the raw report written for *group*.

    The report is streamed while bundles are added; this only checks that
    the group was finished.
    """
    if not group.closed:
        raise ReportStateError(
            f"Report group '{group.name}' is {group.state.value}; finish it before writing."
        )
    return group.path


# --------------------------------------------------------------------------- #
# Reformat
# --------------------------------------------------------------------------- #

def raw_path_for(path: Path) -> Path:
    """``/a/b/coverage.xml`` -> ``/a/b/raw.coverage.xml``"""
    return path.with_name(RAW_PREFIX + path.name)


def _strip_whitespace(node) -> None:
    for child in list(node.childNodes):
        if child.nodeType == Node.TEXT_NODE and not child.data.strip():
            node.removeChild(child)
        elif child.nodeType == Node.ELEMENT_NODE:
            _strip_whitespace(child)


def _pretty_print(document, encoding: str) -> str:
    root = document.documentElement
    _strip_whitespace(root)
    out = io.StringIO()
    out.write(f'<?xml version="1.0" encoding="{encoding}" standalone="yes"?>\n')
    out.write(DOCTYPE + "\n")
    root.writexml(out, indent="", addindent=INDENT, newl="\n")
    return out.getvalue()


def reformat(path: Path, encoding: str = "UTF-8", *, delete_raw: bool = True) -> Path:
    """Pretty-print the report at *path* in place.

    Raises:
        ReformatError: on any I/O, encoding or parse failure. The raw copy
                       ``raw.<name>`` is left on disk in that case.
    """
    path = Path(path)
    raw_path = raw_path_for(path)

    try:
        codecs.lookup(encoding)
    except LookupError as exc:
        raise ReformatError(f"Unknown output encoding '{encoding}'") from exc

    try:
        os.replace(path, raw_path)
    except OSError as exc:
        raise ReformatError(f"Failed to move '{path}' to '{raw_path}': {exc}") from exc

    try:
        # The DOCTYPE is kept, but neither entities nor the external DTD are resolved
        document = minidom.parse(
            str(raw_path), forbid_dtd=False, forbid_entities=True, forbid_external=True,
        )
    except (ExpatError, DefusedXmlException, OSError) as exc:
        raise ReformatError(f"Failed to parse raw report '{raw_path}': {exc}") from exc

    data = _pretty_print(document, encoding).encode(encoding, errors="xmlcharrefreplace")
    try:
        path.write_bytes(data)
    except OSError as exc:
        path.unlink(missing_ok=True)
        raise ReformatError(f"Failed to write report '{path}': {exc}") from exc

    if delete_raw:
        try:
            raw_path.unlink()
        except OSError as exc:
            raise ReformatError(f"Failed to remove raw report '{raw_path}': {exc}") from exc
        logger.debug("Removed raw report %s", raw_path)
    logger.info("Reformatted report %s", path)
    return path
