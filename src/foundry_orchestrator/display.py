"""Rich-based terminal display for runs and completion reports.

Uses a module-level :class:`~rich.console.Console` so formatting is
consistent across a session.  Functions, not a class: each one is
standalone and accepts the report (or run) it renders.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.foundry_shared import __version__
from src.foundry_shared.models import PhaseStatus, RunStatus

_console = Console()

_PHASE_STYLES: dict[str, str] = {
    PhaseStatus.PASS.value: "[green]PASS[/green]",
    PhaseStatus.FAIL.value: "[bold red]FAIL[/bold red]",
    PhaseStatus.SKIPPED.value: "[cyan]SKIPPED[/cyan]",
    PhaseStatus.NOT_RUN.value: "[dim]NOT RUN[/dim]",
}


def print_run_header(run: Any) -> None:
    """Print a panel identifying the run."""
    header = Text()
    header.append("Agent Foundry", style="bold white")
    header.append(f" v{__version__}\n", style="dim")
    header.append("Run: ", style="bold")
    header.append(f"{_get_attr(run, 'run_id', 'unknown')}\n", style="cyan")
    header.append("Target: ", style="bold")
    header.append(f"{_get_attr(run, 'target_name', '') or 'pending'}\n", style="green")
    header.append("Route: ", style="bold")
    header.append(f"{_get_attr(run, 'route', 'unresolved')}", style="yellow")

    _console.print(
        Panel(header, title="[bold]Pipeline Run[/bold]", border_style="blue", expand=False)
    )


def print_phase_table(report: Any) -> None:
    """Print the phase table (PASS / FAIL / SKIPPED / NOT RUN)."""
    table = Table(title="Phase Status", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Phase", style="cyan", min_width=20)
    table.add_column("Status", justify="center", min_width=10)
    table.add_column("Duration", justify="right", min_width=10)
    table.add_column("Detail")

    for row in _get_attr(report, "phases", []):
        status = _get_attr(row, "status", PhaseStatus.NOT_RUN.value)
        duration = _get_attr(row, "duration_seconds", 0.0)
        table.add_row(
            str(_get_attr(row, "number", "")),
            _get_attr(row, "title", ""),
            _PHASE_STYLES.get(status, status),
            f"{duration:.1f}s" if duration else "—",
            _get_attr(row, "detail", ""),
        )
    _console.print(table)


def print_quality_summary(report: Any) -> None:
    """Print artifact and build quality metrics in a panel."""
    quality = _get_attr(report, "quality_metrics", {}) or {}
    artifact = _get_attr(report, "artifact_metrics", {}) or {}
    if not quality and not artifact:
        return

    content = Text()
    if artifact:
        content.append("Artifact specificity: ", style="bold")
        content.append(f"{artifact.get('specificity_count', 0)}\n")
        gapped = artifact.get("gapped_categories") or []
        content.append("Gapped categories: ", style="bold")
        content.append(f"{', '.join(gapped) if gapped else 'none'}\n")
    if quality:
        content.append("Specificity score: ", style="bold")
        content.append(f"{quality.get('specificity_score', 0)}\n")
        content.append("Decision frameworks: ", style="bold")
        content.append(f"{quality.get('decision_framework_count', 0)}\n")
        placeholders = quality.get("placeholder_count", 0)
        content.append("Placeholders: ", style="bold")
        content.append(f"{placeholders}\n", style="red" if placeholders else "green")
        for item in quality.get("unmet") or []:
            content.append(f"Unmet: {item}\n", style="red")

    _console.print(
        Panel(content, title="[bold]Quality[/bold]", border_style="magenta", expand=False)
    )


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red panel."""
    _console.print(
        Panel(
            Text(str(error), style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )


def print_final_summary(report: Any) -> None:
    """Print the final outcome with resources and follow-up actions."""
    status = _get_attr(report, "status", "unknown")
    if status == RunStatus.SUCCEEDED.value:
        style, title = "green", "Run Succeeded"
    elif status == RunStatus.ABORTED.value:
        style, title = "yellow", "Run Aborted"
    else:
        style, title = "red", "Run Failed"

    content = Text()
    content.append("Run ID: ", style="bold")
    content.append(f"{_get_attr(report, 'run_id', 'unknown')}\n", style="cyan")
    content.append("Target: ", style="bold")
    content.append(f"{_get_attr(report, 'target_name', '')}\n")
    deployed = _get_attr(report, "deployed_path", "")
    if deployed:
        content.append("Published: ", style="bold")
        content.append(f"{deployed}\n", style="green")
    failure_kind = _get_attr(report, "failure_kind", "")
    if failure_kind:
        content.append("Failure: ", style="bold")
        content.append(
            f"Phase {_get_attr(report, 'failed_phase', '?')} {failure_kind}\n", style=style
        )
    follow_ups = _get_attr(report, "follow_up_actions", []) or []
    if follow_ups:
        content.append("\nFollow-up:\n", style="bold")
        for action in follow_ups:
            content.append(f"  - {action}\n")

    _console.print(
        Panel(content, title=f"[bold]{title}[/bold]", border_style=style, expand=False)
    )


def print_completion_report(report: Any) -> None:
    """Print the phase table, quality panel, any error and the final summary."""
    print_phase_table(report)
    print_quality_summary(report)
    message = _get_attr(report, "failure_message", "")
    if message:
        print_error_panel(f"{_get_attr(report, 'failure_kind', '')}: {message}")
    print_final_summary(report)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Get attribute from object or dict, with fallback to default."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)
