"""Tests for reports/output.py — raw emission and the crash-safe reformat pass."""

from pathlib import Path

import pytest
from defusedxml import ElementTree

from reactor_coverage.reports.aggregate import ReportAggregator
from reactor_coverage.reports.errors import ReformatError, ReportStateError
from reactor_coverage.reports.output import raw_path_for, reformat, write_raw
from reactor_coverage.reports.xml_writer import DOCTYPE


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #

@pytest.fixture
def raw_report(workspace):
    """A finished raw report with app, core and util bundles."""
    aggregator = ReportAggregator(workspace.exec_file, workspace.output)
    group = aggregator.new_report()
    for module in (workspace.app, workspace.core, workspace.util):
        aggregator.add_module(group, module)
    aggregator.finish(group)
    return write_raw(group)


def _shape(element):
    """Tag, attributes and children of *element*, ignoring whitespace."""
    return (element.tag, dict(element.attrib), [_shape(child) for child in element])


def _load_shape(path):
    return _shape(ElementTree.parse(str(path)).getroot())


# --------------------------------------------------------------------------- #
# write_raw
# --------------------------------------------------------------------------- #

def test_write_raw_returns_output_path(workspace, raw_report):
    assert raw_report == workspace.output
    assert raw_report.read_text(encoding="utf-8").startswith('<?xml version="1.0" encoding="UTF-8"')


def test_write_raw_requires_closed_group(workspace):
    group = ReportAggregator(workspace.exec_file, workspace.output).new_report()
    with pytest.raises(ReportStateError, match="finish it"):
        write_raw(group)


def test_raw_path_is_sibling():
    assert raw_path_for(Path("/a/b/coverage.xml")) == Path("/a/b/raw.coverage.xml")


# --------------------------------------------------------------------------- #
# reformat — success
# --------------------------------------------------------------------------- #

class TestReformat:
    def test_round_trip_keeps_logical_content(self, raw_report):
        before = _load_shape(raw_report)
        reformat(raw_report)
        after = _load_shape(raw_report)

        assert after == before
        assert [g[1]["name"] for g in after[2] if g[0] == "group"] == ["app", "core", "util"]

    def test_output_is_indented_with_two_spaces(self, raw_report):
        reformat(raw_report)
        lines = raw_report.read_text(encoding="utf-8").splitlines()

        assert lines[0] == '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        assert lines[1] == DOCTYPE
        assert lines[2] == '<report name="XML">'
        assert lines[3] == '  <group name="app">'
        assert lines[4] == '    <package name="app_pkg">'
        assert lines[-1] == "</report>"

    def test_doctype_identifiers_reattached(self, raw_report):
        reformat(raw_report)
        text = raw_report.read_text(encoding="utf-8")
        assert '"-//JACOCO//DTD Report 1.0//EN"' in text
        assert '"report.dtd"' in text

    def test_raw_copy_deleted_by_default(self, raw_report):
        reformat(raw_report)
        assert raw_report.exists()
        assert not raw_path_for(raw_report).exists()

    def test_raw_copy_kept_when_requested(self, raw_report):
        original = raw_report.read_bytes()
        reformat(raw_report, delete_raw=False)
        assert raw_path_for(raw_report).read_bytes() == original

    def test_configured_encoding_declared(self, raw_report):
        reformat(raw_report, "ISO-8859-1")
        first_line = raw_report.read_bytes().decode("iso-8859-1").splitlines()[0]
        assert 'encoding="ISO-8859-1"' in first_line

    def test_reformat_is_idempotent(self, raw_report):
        reformat(raw_report)
        once = raw_report.read_bytes()
        reformat(raw_report)
        assert raw_report.read_bytes() == once


# --------------------------------------------------------------------------- #
# reformat — failures
# --------------------------------------------------------------------------- #

class TestReformatFailures:
    def test_malformed_raw_keeps_temporary_copy(self, tmp_path):
        report = tmp_path / "coverage.xml"
        report.write_text('<report name="XML"><group name="app">', encoding="utf-8")

        with pytest.raises(ReformatError) as excinfo:
            reformat(report)

        assert excinfo.value.__cause__ is not None
        assert raw_path_for(report).read_text(encoding="utf-8").startswith("<report")
        assert not report.exists()

    def test_entity_expansion_is_refused(self, tmp_path):
        report = tmp_path / "coverage.xml"
        report.write_text(
            '<?xml version="1.0"?>'
            '<!DOCTYPE report [<!ENTITY lol "lol"><!ENTITY lol2 "&lol;&lol;">]>'
            '<report name="&lol2;"/>',
            encoding="utf-8",
        )

        with pytest.raises(ReformatError):
            reformat(report)
        assert raw_path_for(report).exists()
        assert not report.exists()

    def test_external_entity_is_refused(self, tmp_path):
        secret = tmp_path / "secret.txt"
        secret.write_text("top secret", encoding="utf-8")
        report = tmp_path / "coverage.xml"
        report.write_text(
            '<?xml version="1.0"?>'
            f'<!DOCTYPE report [<!ENTITY xxe SYSTEM "file://{secret}">]>'
            '<report name="&xxe;"/>',
            encoding="utf-8",
        )

        with pytest.raises(ReformatError):
            reformat(report)
        assert raw_path_for(report).exists()

    def test_missing_report_raises(self, tmp_path):
        with pytest.raises(ReformatError, match="Failed to move"):
            reformat(tmp_path / "coverage.xml")

    def test_unknown_encoding_leaves_report_untouched(self, raw_report):
        original = raw_report.read_bytes()
        with pytest.raises(ReformatError, match="Unknown output encoding"):
            reformat(raw_report, "no-such-encoding")
        assert raw_report.read_bytes() == original
