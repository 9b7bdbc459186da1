"""
mvpflow command line.

Usage:
    mvpflow decompose "Add user search" -d "Search users by name" -r "API endpoint"
    mvpflow suggest "Fix login timeout" -d "Session expires early" -r "Sessions last 30m"
    mvpflow templates --type bug_fix
    mvpflow run "Fix login timeout" -d "..." -r "..." --executor noop
    mvpflow analyze workflow.json
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import click

from mvpflow import console as out
from mvpflow.application.decomposer import DecompositionOptions, TaskDecomposer
from mvpflow.application.orchestrator import CreationOptions
from mvpflow.domain.exceptions import ConfigurationError, WorkflowError
from mvpflow.domain.graph import analyze as analyze_graph
from mvpflow.domain.models import TaskSpecification
from mvpflow.domain.templates import TemplateFilters
from mvpflow.factory import build_orchestrator
from mvpflow.logging_setup import setup_logging

F = TypeVar("F", bound=Callable[..., Any])


def task_options(func: F) -> F:
    """
    Decorator adding the task specification options to a click command.

    Options added:
        TITLE: Task title (argument)
        -d/--description: Task description
        -r/--requirement: Requirement (repeatable)
        -a/--acceptance: Acceptance criterion (repeatable)
        --time-limit: Hours available
    """

    @click.argument("title")
    @click.option("-d", "--description", required=True, help="Task description")
    @click.option(
        "-r",
        "--requirement",
        "requirements",
        multiple=True,
        required=True,
        help="Requirement (repeat for several)",
    )
    @click.option(
        "-a",
        "--acceptance",
        "acceptance_criteria",
        multiple=True,
        help="Acceptance criterion (repeat for several)",
    )
    @click.option(
        "--time-limit",
        default=None,
        type=float,
        help="Hours available for the task",
    )
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _task_spec(
    title: str,
    description: str,
    requirements: tuple[str, ...],
    acceptance_criteria: tuple[str, ...],
    time_limit: float | None,
) -> TaskSpecification:
    constraints = {"time_limit": time_limit} if time_limit is not None else {}
    return TaskSpecification(
        title=title,
        description=description,
        requirements=requirements,
        acceptance_criteria=acceptance_criteria,
        constraints=constraints,
    )


@click.group()
@click.option(
    "--log-file",
    default=None,
    type=click.Path(),
    help="Path to log file",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose (DEBUG) logging to console",
)
def cli(log_file: str | None, verbose: bool) -> None:
    """MVP-first workflow orchestration."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)


@cli.command()
@task_options
@click.option("--quick-wins", is_flag=True, help="Boost low-effort steps")
@click.option("--json", "as_json", is_flag=True, help="Print the decomposition as JSON")
def decompose(
    title: str,
    description: str,
    requirements: tuple[str, ...],
    acceptance_criteria: tuple[str, ...],
    time_limit: float | None,
    quick_wins: bool,
    as_json: bool,
) -> None:
    """Decompose a task into MVP-first steps."""
    task_spec = _task_spec(
        title, description, requirements, acceptance_criteria, time_limit
    )
    try:
        decomposition = TaskDecomposer().decompose(
            task_spec, DecompositionOptions(prioritize_quick_wins=quick_wins)
        )
    except ConfigurationError as e:
        out.print_error(str(e))
        raise SystemExit(2) from e

    if as_json:
        click.echo(json.dumps(dataclasses.asdict(decomposition), indent=2, default=str))
    else:
        out.print_decomposition(decomposition)


@cli.command()
@task_options
def suggest(
    title: str,
    description: str,
    requirements: tuple[str, ...],
    acceptance_criteria: tuple[str, ...],
    time_limit: float | None,
) -> None:
    """Suggest templates for a task."""
    task_spec = _task_spec(
        title, description, requirements, acceptance_criteria, time_limit
    )
    orchestrator = build_orchestrator()
    out.print_suggestions(orchestrator.templates.suggest(task_spec))


@cli.command()
@click.option("--type", "template_type", default=None, help="Filter by template type")
@click.option("--category", default=None, help="Filter by category")
@click.option("--max-steps", default=None, type=int, help="Maximum number of steps")
def templates(
    template_type: str | None, category: str | None, max_steps: int | None
) -> None:
    """List registered workflow templates."""
    orchestrator = build_orchestrator()
    filters = TemplateFilters(
        type=template_type, category=category, max_steps=max_steps
    )
    out.print_templates(orchestrator.templates.get_available_templates(filters))


@cli.command()
@task_options
@click.option("--template", "template_name", default=None, help="Template to instantiate")
@click.option(
    "--executor",
    default="noop",
    show_default=True,
    help="Registered executor used for every step",
)
@click.option(
    "--events-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Write the execution trace as JSONL under this directory",
)
@click.option(
    "--export",
    "export_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Save the finished workflow configuration as JSON",
)
def run(
    title: str,
    description: str,
    requirements: tuple[str, ...],
    acceptance_criteria: tuple[str, ...],
    time_limit: float | None,
    template_name: str | None,
    executor: str,
    events_dir: str | None,
    export_path: str | None,
) -> None:
    """Create a workflow for a task and run it."""
    task_spec = _task_spec(
        title, description, requirements, acceptance_criteria, time_limit
    )
    try:
        orchestrator = build_orchestrator(executor=executor, events_dir=events_dir)
    except KeyError as e:
        out.print_error(str(e.args[0]), hint="Register executors under 'mvpflow.executors'")
        raise SystemExit(2) from e

    try:
        instance = orchestrator.create_workflow(
            task_spec,
            template_name=template_name,
            options=CreationOptions(metadata={"executor": executor}),
        )
    except ConfigurationError as e:
        out.print_error(str(e))
        raise SystemExit(2) from e

    out.print_header(
        f"Workflow {instance.id}",
        f"{instance.template_name or 'custom'}: {len(instance.steps)} steps",
    )
    out.print_steps(instance.steps)

    report = asyncio.run(orchestrator.execute_workflow(instance))
    out.print_report(report)

    if export_path:
        document = orchestrator.export_workflow_configuration(instance.id)
        with open(export_path, "w") as f:
            json.dump(document, f, indent=2)
        out.console.print(f"[dim]Configuration saved to {export_path}[/dim]")

    if not report.success:
        raise SystemExit(1)


@cli.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
def analyze(config: str) -> None:
    """Analyze the dependency graph of an exported workflow configuration."""
    try:
        with open(config) as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        out.print_error(f"{config} is not valid JSON: {e}")
        raise SystemExit(2) from e

    orchestrator = build_orchestrator()
    try:
        instance = orchestrator.import_workflow_configuration(document)
    except WorkflowError as e:
        out.print_error(str(e))
        raise SystemExit(2) from e

    graph = orchestrator.tracker.get_graph(instance.id)
    out.print_header(f"Workflow {instance.id}", instance.task_spec.title)
    out.print_analysis(analyze_graph(graph))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
