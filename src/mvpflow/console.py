"""Rich console utilities for the mvpflow command line."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mvpflow.domain.decomposition import Decomposition
from mvpflow.domain.graph import GraphAnalysis
from mvpflow.domain.models import CompletionReport, Step
from mvpflow.domain.templates import TemplateInfo, TemplateSuggestion

# Shared console instances
console = Console()
error_console = Console(stderr=True)

_RISK_STYLES = {"low": "green", "medium": "yellow", "high": "red"}


def print_header(title: str, subtitle: str | None = None) -> None:
    """Print a styled header panel."""
    content = Text(title, style="bold blue")
    if subtitle:
        content.append(f"\n{subtitle}", style="dim")
    console.print(Panel(content, expand=False))


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    console.print(Panel(message, title="Success", border_style="green"))


def print_failure(message: str, details: str | None = None) -> None:
    content = Text(message, style="bold red")
    if details:
        content.append(f"\n{details}", style="dim")
    console.print(Panel(content, title="Failed", border_style="red"))


def print_steps(steps: Sequence[Step], mvp_core: Sequence[str] = ()) -> None:
    """Print steps with priority, effort and risk."""
    table = Table(show_header=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Step", style="cyan")
    table.add_column("Type")
    table.add_column("Priority", style="magenta")
    table.add_column("Effort", justify="right")
    table.add_column("Risk")
    table.add_column("Depends on", style="dim")

    for index, step in enumerate(steps, 1):
        name = f"{step.name} *" if step.id in mvp_core else step.name
        risk = step.risk_level.value
        table.add_row(
            str(index),
            name,
            step.type.value,
            step.priority.value if step.priority else "-",
            f"{step.estimated_effort:g}",
            f"[{_RISK_STYLES[risk]}]{risk}[/]",
            ", ".join(step.dependencies) or "-",
        )
    console.print(table)


def print_decomposition(decomposition: Decomposition) -> None:
    print_header(
        f"{decomposition.task_type.value} ({decomposition.complexity.value} complexity)",
        f"Complexity score {decomposition.complexity_score}, "
        f"~{decomposition.estimated_duration.estimated_hours:g} hours",
    )
    print_steps(decomposition.steps, decomposition.mvp_core.step_ids)
    console.print(f"[dim]* MVP core: {decomposition.mvp_core.description}[/dim]")

    console.print("\n[bold]Phases:[/bold]")
    for phase in decomposition.phasing:
        console.print(f"  {phase.mvp_level}. {phase.name}: {', '.join(phase.step_ids)}")

    if decomposition.risk_assessment:
        console.print("\n[bold]Risks:[/bold]")
        for risk in decomposition.risk_assessment:
            style = _RISK_STYLES[risk.level.value]
            console.print(f"  [{style}]{risk.level.value}[/] {risk.type}: {risk.description}")
            console.print(f"    [dim]{risk.mitigation}[/dim]")


def print_suggestions(suggestions: Sequence[TemplateSuggestion]) -> None:
    if not suggestions:
        console.print("[yellow]No template scored above the suggestion threshold.[/yellow]")
        return
    table = Table(show_header=True)
    table.add_column("Template", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Reason")
    for suggestion in suggestions:
        table.add_row(suggestion.name, f"{suggestion.score:.2f}", suggestion.reason)
    console.print(table)


def print_templates(templates: Sequence[TemplateInfo]) -> None:
    table = Table(show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Steps", justify="right")
    table.add_column("Checkpoints", justify="right")
    table.add_column("Hours", justify="right")
    table.add_column("Version")
    for info in templates:
        table.add_row(
            info.name,
            info.type,
            info.category,
            str(info.step_count),
            str(info.checkpoint_count),
            f"{info.estimated_duration:g}",
            info.version,
        )
    console.print(table)


def print_report(report: CompletionReport) -> None:
    """Print a Completion Report summary."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Workflow", report.workflow_id)
    table.add_row("Template", report.template_name or "(from scratch)")
    table.add_row("Status", report.status.value)
    table.add_row(
        "Steps",
        f"{report.completed_steps}/{report.total_steps} completed, "
        f"{report.skipped_steps} skipped, {report.failed_steps} failed",
    )
    table.add_row("Errors", str(report.error_count))
    table.add_row("Checkpoint pass rate", f"{report.quality.checkpoint_pass_rate:.0f}%")
    table.add_row("Quality score", f"{report.quality.quality_score:.0f}")
    table.add_row("Duration", f"{report.duration_seconds:.2f}s")
    console.print(table)

    for error in report.errors:
        console.print(f"  [red]{error.step_id or 'workflow'}[/red]: {error.message}")

    if report.success:
        print_success(f"Workflow {report.workflow_id} completed")
    else:
        print_failure(f"Workflow {report.workflow_id} did not succeed", report.status.value)


def print_analysis(analysis: GraphAnalysis) -> None:
    console.print(f"[bold]Steps:[/bold] {analysis.node_count}  "
                  f"[bold]Dependencies:[/bold] {analysis.edge_count}  "
                  f"[bold]Total effort:[/bold] {analysis.total_effort:g}")
    console.print(f"[bold]Critical path:[/bold] {' -> '.join(analysis.critical_path) or '-'}")

    console.print("\n[bold]Parallel groups:[/bold]")
    for group in analysis.parallel_groups or [[]]:
        console.print(f"  {', '.join(group) or '-'}")

    if analysis.cycles:
        console.print("\n[bold red]Cycles:[/bold red]")
        for cycle in analysis.cycles:
            console.print(f"  {' -> '.join(cycle)}")

    if analysis.risks:
        console.print("\n[bold]Risks:[/bold]")
        for risk in analysis.risks:
            style = _RISK_STYLES.get(risk.severity.value, "white")
            console.print(f"  [{style}]{risk.severity.value}[/] {risk.type}: {risk.description}")
