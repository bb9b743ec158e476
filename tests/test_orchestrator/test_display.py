"""Tests for the rich display helpers."""

from __future__ import annotations

from unittest.mock import patch

from rich.console import Console

from src.foundry_orchestrator import display
from src.foundry_orchestrator.report import generate_completion_report
from src.foundry_orchestrator.state import PipelineRun
from src.foundry_orchestrator.telemetry import PhaseTelemetry


def _capture(func, *args) -> str:
    console = Console(record=True, width=140)
    with patch.object(display, "_console", console):
        func(*args)
    return console.export_text()


def _failed_report():
    run = PipelineRun(
        run_id="abc123",
        target_name="kubernetes-security",
        status="failed",
        failed_phase=4,
        failure_kind="WorkerTimedOut",
        failure_message="web_research exceeded 1s",
    )
    return generate_completion_report(run, PhaseTelemetry())


class TestDisplay:
    def test_run_header(self) -> None:
        run = PipelineRun(run_id="abc123", target_name="dns-expert", route="web")
        out = _capture(display.print_run_header, run)
        assert "abc123" in out
        assert "dns-expert" in out

    def test_phase_table_shows_statuses(self) -> None:
        out = _capture(display.print_phase_table, _failed_report())
        assert "FAIL" in out
        assert "NOT RUN" in out

    def test_quality_summary_skipped_without_metrics(self) -> None:
        assert _capture(display.print_quality_summary, {}) == ""

    def test_quality_summary_from_dict(self) -> None:
        report = {"quality_metrics": {"specificity_score": 42.0, "placeholder_count": 0,
                                      "unmet": ["frameworks 2 < 5"]}}
        out = _capture(display.print_quality_summary, report)
        assert "42.0" in out
        assert "frameworks 2 < 5" in out

    def test_final_summary_failed(self) -> None:
        out = _capture(display.print_final_summary, _failed_report())
        assert "Run Failed" in out
        assert "Phase 4 WorkerTimedOut" in out

    def test_final_summary_aborted(self) -> None:
        out = _capture(display.print_final_summary, {"status": "aborted", "run_id": "x"})
        assert "Run Aborted" in out

    def test_completion_report_includes_error_panel(self) -> None:
        out = _capture(display.print_completion_report, _failed_report())
        assert "WorkerTimedOut: web_research exceeded 1s" in out
