"""Completion report generator.

Assembles the report from the run record and phase telemetry, renders
it as Markdown (pure) and writes Markdown and JSON copies to the run
directory.  A failed run never produces a successful-looking report:
phases before the failure show PASS (or SKIPPED), the failing phase
shows FAIL with its reason, and later phases show NOT RUN.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.foundry_orchestrator.state import PipelineRun
from src.foundry_orchestrator.telemetry import PhaseTelemetry
from src.foundry_shared.constants import (
    ALL_PHASES,
    PHASE_NUMBERS,
    PHASE_TITLES,
    REPORT_JSON_FILE,
    REPORT_MD_FILE,
)
from src.foundry_shared.models import PhaseStatus, RunStatus
from src.foundry_shared.utils import atomic_write_json

logger = logging.getLogger(__name__)

_STATUS_BADGES: dict[str, str] = {
    PhaseStatus.PASS.value: "PASS",
    PhaseStatus.FAIL.value: "**FAIL**",
    PhaseStatus.SKIPPED.value: "SKIPPED",
    PhaseStatus.NOT_RUN.value: "NOT RUN",
}

FOLLOW_UPS: dict[str, list[str]] = {
    "DuplicateUnresolved": [
        "Answer the registry conflict (rebuild, narrow:<suffix>, or abort) and re-run.",
        "Inspect the overlapping registry entries listed in the failure message.",
    ],
    "DispositionUnresolved": [
        "Decide whether to reuse or regenerate the existing work order and re-run.",
    ],
    "Aborted": [
        "The run was aborted; nothing was published. Re-run when ready.",
    ],
    "Unreachable": [
        "Check the repository URL and network access, then re-run.",
        "Alternatively clone the repository locally and pass its path.",
    ],
    "RouteUnsatisfiable": [
        "Provide a local path or repository URL, or drop the repository mode override.",
    ],
    "WorkOrderInvalid": [
        "Complete the work order (at least 6 sections with 3 sub-questions each) and re-run.",
    ],
    "StructurallyInvalid": [
        "Inspect the worker document; every category must be populated or carry a GAP marker.",
    ],
    "WorkerFailed": [
        "Inspect the worker error reason and logs; re-run once the cause is fixed.",
    ],
    "WorkerTimedOut": [
        "Decide whether to retry with a longer timeout, downgrade the route, or abort.",
    ],
    "QualityThresholdUnmet": [
        "Review the unmet thresholds; enrich the research input or rebuild.",
    ],
    "ValidationFailed": [
        "Fix the format diagnostics in the built resource and redeploy.",
    ],
    "ExitPredicateUnmet": [
        "A phase completed without satisfying its exit predicate; inspect the run state.",
    ],
    "ConfigurationError": [
        "Fix the configuration value named in the failure message.",
    ],
}

_SUCCESS_FOLLOW_UPS = [
    "Review the published resource before relying on it.",
]


@dataclass
class PhaseRow:
    """One line of the phase table."""

    number: int
    name: str
    title: str
    status: str
    duration_seconds: float = 0.0
    detail: str = ""


@dataclass
class CompletionReport:
    """Everything the caller is told about a finished run."""

    run_id: str
    target_name: str
    route: str
    status: str
    phases: list[PhaseRow] = field(default_factory=list)
    failed_phase: int | None = None
    failure_kind: str = ""
    failure_message: str = ""
    invocations: list[dict[str, Any]] = field(default_factory=list)
    quality_metrics: dict[str, Any] = field(default_factory=dict)
    artifact_metrics: dict[str, Any] = field(default_factory=dict)
    deployed_path: str = ""
    resources_created: list[str] = field(default_factory=list)
    resources_modified: list[str] = field(default_factory=list)
    resources_removed: list[str] = field(default_factory=list)
    cleanup_actions: list[str] = field(default_factory=list)
    follow_up_actions: list[str] = field(default_factory=list)
    started_at: str = ""
    ended_at: str = ""
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED.value

    def phase_status(self, number: int) -> str:
        for row in self.phases:
            if row.number == number:
                return row.status
        return PhaseStatus.NOT_RUN.value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _phase_rows(run: PipelineRun, telemetry: PhaseTelemetry) -> list[PhaseRow]:
    rows: list[PhaseRow] = []
    for phase in ALL_PHASES:
        number = PHASE_NUMBERS[phase]
        record = telemetry.phases.get(phase)
        status = record.status.value if record else PhaseStatus.NOT_RUN.value
        detail = record.detail if record else ""
        duration = record.duration_seconds if record else 0.0

        if run.failed_phase is not None:
            if number == run.failed_phase:
                status = PhaseStatus.FAIL.value
                detail = f"{run.failure_kind}: {run.failure_message}"
            elif number > run.failed_phase:
                status = PhaseStatus.NOT_RUN.value
                detail = ""
        rows.append(
            PhaseRow(
                number=number,
                name=phase,
                title=PHASE_TITLES[phase],
                status=status,
                duration_seconds=duration,
                detail=detail,
            )
        )
    return rows


def _follow_ups(run: PipelineRun) -> list[str]:
    if run.status == RunStatus.SUCCEEDED.value:
        actions = list(_SUCCESS_FOLLOW_UPS)
        gapped = run.artifact_metrics.get("gapped_categories") or []
        if gapped:
            actions.append("Fill the gapped artifact categories: " + ", ".join(gapped) + ".")
        if run.artifact_metrics.get("contradictions"):
            actions.append("Resolve the contradictions flagged in the merged artifact.")
        return actions
    actions = list(FOLLOW_UPS.get(run.failure_kind, ["Inspect the run state and logs, then re-run."]))
    if run.quality_unmet:
        actions += [f"Unmet: {item}" for item in run.quality_unmet]
    return actions


def generate_completion_report(run: PipelineRun, telemetry: PhaseTelemetry) -> CompletionReport:
    """Build the report for *run* from its record and phase telemetry."""
    quality = dict(run.built_resource.get("quality_report") or {})
    if run.quality_unmet:
        quality["unmet"] = list(run.quality_unmet)
    return CompletionReport(
        run_id=run.run_id,
        target_name=run.target_name,
        route=run.route,
        status=run.status,
        phases=_phase_rows(run, telemetry),
        failed_phase=run.failed_phase,
        failure_kind=run.failure_kind,
        failure_message=run.failure_message,
        invocations=[dict(i) for i in run.invocations],
        quality_metrics=quality,
        artifact_metrics=dict(run.artifact_metrics),
        deployed_path=run.deployed_path,
        resources_created=list(run.resources_created),
        resources_modified=list(run.resources_modified),
        resources_removed=list(run.resources_removed),
        cleanup_actions=list(run.cleanup_actions),
        follow_up_actions=_follow_ups(run),
        started_at=run.started_at,
        ended_at=run.ended_at,
    )


# ---------------------------------------------------------------------------
# Internal section builders
# ---------------------------------------------------------------------------


def _summary_section(report: CompletionReport) -> str:
    lines = [
        f"# Completion Report: {report.target_name or 'unnamed'}",
        "",
        f"**Status:** {report.status.upper()}",
        "",
        f"- **Run:** `{report.run_id}`",
        f"- **Route:** {report.route}",
        f"- **Started:** {report.started_at}",
        f"- **Ended:** {report.ended_at}",
    ]
    if report.failed_phase is not None:
        lines.append(
            f"- **Failed at:** Phase {report.failed_phase} ({report.failure_kind})"
        )
    lines.append("")
    return "\n".join(lines)


def _phase_section(report: CompletionReport) -> str:
    lines = [
        "## Phases",
        "",
        "| # | Phase | Status | Duration (s) | Detail |",
        "|---|---|---|---|---|",
    ]
    for row in report.phases:
        detail = row.detail.replace("|", "\\|").replace("\n", " ")
        lines.append(
            f"| {row.number} | {row.title} | {_STATUS_BADGES.get(row.status, row.status)} "
            f"| {row.duration_seconds:.2f} | {detail} |"
        )
    lines.append("")
    return "\n".join(lines)


def _invocation_section(report: CompletionReport) -> str:
    lines = ["## Worker Invocations", ""]
    if not report.invocations:
        lines += ["No workers were dispatched.", ""]
        return "\n".join(lines)
    lines += ["| Worker | Status | Input | Result | Reason |", "|---|---|---|---|---|"]
    for inv in report.invocations:
        lines.append(
            f"| {inv.get('worker_kind', '')} | {inv.get('status', '')} "
            f"| `{inv.get('input_ref', '')}` | `{inv.get('result_artifact_ref') or '-'}` "
            f"| {inv.get('error_reason') or ''} |"
        )
    lines.append("")
    return "\n".join(lines)


def _metrics_section(report: CompletionReport) -> str:
    lines = ["## Quality Metrics", ""]
    if report.artifact_metrics:
        a = report.artifact_metrics
        lines.append(f"- **Artifact specificity count:** {a.get('specificity_count', 0)}")
        lines.append(f"- **Artifact source:** {a.get('source', '')}")
        gapped = a.get("gapped_categories") or []
        lines.append(f"- **Gapped categories:** {', '.join(gapped) if gapped else 'none'}")
        if "contradictions" in a:
            lines.append(f"- **Contradictions preserved:** {a['contradictions']}")
    q = report.quality_metrics
    if q:
        lines.append(f"- **Specificity score:** {q.get('specificity_score', 0)}")
        lines.append(f"- **Decision frameworks:** {q.get('decision_framework_count', 0)}")
        lines.append(f"- **Placeholders:** {q.get('placeholder_count', 0)}")
        coverage = q.get("section_coverage") or []
        lines.append(f"- **Section coverage:** {', '.join(coverage) if coverage else 'none'}")
        for item in q.get("unmet") or []:
            lines.append(f"- **Unmet:** {item}")
    if len(lines) == 2:
        lines.append("No quality metrics were collected.")
    lines.append("")
    return "\n".join(lines)


def _resources_section(report: CompletionReport) -> str:
    lines = ["## Resources", ""]
    groups = [
        ("Created", report.resources_created),
        ("Modified", report.resources_modified),
        ("Removed", report.resources_removed),
        ("Cleanup", report.cleanup_actions),
    ]
    any_listed = False
    for label, items in groups:
        if not items:
            continue
        any_listed = True
        lines.append(f"### {label}")
        lines.append("")
        lines.extend(f"- `{item}`" if label != "Cleanup" else f"- {item}" for item in items)
        lines.append("")
    if not any_listed:
        lines += ["No resources were created or modified.", ""]
    return "\n".join(lines)


def _follow_up_section(report: CompletionReport) -> str:
    lines = ["## Follow-up Actions", ""]
    lines.extend(f"- {action}" for action in report.follow_up_actions)
    lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render_markdown(report: CompletionReport) -> str:
    """Render *report* as Markdown.

    This is a pure function: it performs no I/O and has no side effects.
    """
    sections = [
        _summary_section(report),
        _phase_section(report),
        _invocation_section(report),
        _metrics_section(report),
        _resources_section(report),
        _follow_up_section(report),
    ]
    return "\n".join(sections)


def write_report(report: CompletionReport, directory: Path | str) -> tuple[Path, Path]:
    """Write the Markdown and JSON copies of *report* into *directory*."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    md_path = directory / REPORT_MD_FILE
    json_path = directory / REPORT_JSON_FILE
    md_path.write_text(render_markdown(report), encoding="utf-8")
    atomic_write_json(json_path, report.to_dict())
    logger.info("Completion report written to %s", md_path)
    return md_path, json_path
