"""Unit tests for minipm.models.report module."""

from __future__ import annotations

import pytest
from semantic_version import Version

from minipm.exceptions import IntegrityMismatchError
from minipm.models import InstallReport, ResolvedNode


def _node(name: str, version: str = "1.0.0") -> ResolvedNode:
    return ResolvedNode(name, Version(version))


@pytest.mark.unit
class TestInstallReport:
    """Tests for InstallReport recording and summaries."""

    def test_empty_report_is_ok(self) -> None:
        report = InstallReport()

        assert report.ok
        assert report.total == 0
        assert report.summary() == "0 installed, 0 skipped, 0 failed"

    def test_records_each_outcome(self) -> None:
        report = InstallReport()
        report.record_installed(_node("a"))
        report.record_skipped(_node("b", "2.0.0"))

        assert report.installed == {("a", "1.0.0")}
        assert report.skipped == {("b", "2.0.0")}
        assert report.ok
        assert report.total == 2

    def test_failure_makes_report_not_ok(self) -> None:
        report = InstallReport()
        error = IntegrityMismatchError("digest mismatch")

        report.record_failed(_node("c"), error)

        assert not report.ok
        assert report.failed == {"c": error}

    def test_cancelled_in_summary(self) -> None:
        report = InstallReport()
        report.record_installed(_node("a"))
        report.record_cancelled(_node("b"))

        assert not report.ok
        assert report.summary() == "1 installed, 0 skipped, 0 failed, 1 cancelled"

    def test_failure_lines_sorted(self) -> None:
        report = InstallReport()
        report.record_failed(_node("zeta"), RuntimeError("late"))
        report.record_failed(_node("alpha"), RuntimeError("early"))

        assert report.failure_lines() == ["alpha: early", "zeta: late"]

    def test_lock_excluded_from_equality(self) -> None:
        first, second = InstallReport(), InstallReport()
        first.record_installed(_node("a"))
        second.record_installed(_node("a"))

        assert first == second
