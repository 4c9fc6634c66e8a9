"""Command line interface for running aiflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
import yaml

from . import __version__
from .config import AiflowConfig, load_config
from .constants import (
    DEFAULT_CLEANUP_MAX_AGE_DAYS,
    ENV_DEBUG,
    EXIT_GENERAL_ERROR,
    EXIT_INTEGRATION_ERROR,
    EXIT_VALIDATION_ERROR,
    EXIT_WORKFLOW_ERROR,
    SESSION_STATUSES,
)
from .engine import (
    EventBus,
    StepCompleted,
    StepFailed,
    StepStarted,
    WorkflowEngine,
    create_engine,
)
from .errors import (
    AICommunicationError,
    ConfigurationError,
    StateError,
    TemplateError,
    ValidationError,
    WorkflowError,
    format_error,
)
from .loader import WorkflowLoader
from .persistence import WorkflowSessionState, get_state_manager

app = typer.Typer(help="AI Workflow Orchestrator - Manage AI agents for development tasks")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting workflow definitions")
session_app = typer.Typer(help="Commands for managing workflow sessions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(session_app, name="session")


def _exit_code_for(error: BaseException) -> int:
    if isinstance(error, (ValidationError, TemplateError, ConfigurationError)):
        return EXIT_VALIDATION_ERROR
    if isinstance(error, AICommunicationError):
        return EXIT_INTEGRATION_ERROR
    if isinstance(error, (WorkflowError, StateError)):
        return EXIT_WORKFLOW_ERROR
    return EXIT_GENERAL_ERROR


def _fail(error: BaseException) -> NoReturn:
    typer.secho(f"Error: {format_error(error)}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=_exit_code_for(error))


def _usage_error(message: str) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=EXIT_VALIDATION_ERROR)


def _check_choice(value: str, choices: tuple[str, ...], option: str) -> None:
    if value not in choices:
        _usage_error(f"{option} must be one of: {', '.join(choices)}")


def _setup(config_path: Optional[str], verbose: bool = False) -> AiflowConfig:
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        _fail(exc)
    debug = verbose or bool(os.getenv(ENV_DEBUG))
    logging.basicConfig(
        level=logging.DEBUG if debug else config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _progress_events() -> EventBus:
    events = EventBus()
    events.on(StepStarted, lambda e: typer.echo(f"  -> {e.step_id}"))
    events.on(
        StepCompleted,
        lambda e: typer.secho(f"     {e.step_id} completed", fg=typer.colors.GREEN),
    )
    events.on(
        StepFailed,
        lambda e: typer.secho(f"     {e.step_id} failed: {e.error}", fg=typer.colors.RED),
    )
    return events


def _print_state_summary(state: Any) -> None:
    typer.echo(f"Session: {state.session_id}")
    typer.echo(f"Status: {state.status}")
    typer.echo(f"Steps completed: {state.current_step_index}")
    if state.outputs:
        typer.echo(f"Outputs: {json.dumps(state.outputs, indent=2, default=str)}")


@app.callback()
def main() -> None:
    """aiflow CLI entry point."""
    pass


@app.command("version")
def version() -> None:
    """Print the installed aiflow version."""
    typer.echo(f"aiflow v{__version__}")


@app.command("run")
def run(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object with workflow inputs"),
    feature_url: Optional[str] = typer.Option(
        None, "--feature-url", help="Issue URL passed to the workflow as feature_url"
    ),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """
    Start a new workflow execution.

    Example:
        aiflow run feature-analysis --input '{"name": "login"}'
        aiflow run feature-analysis --feature-url https://github.com/org/repo/issues/1
    """
    if not workflow_id.strip():
        _usage_error("Workflow ID is required and must be a non-empty string")

    inputs: Dict[str, Any] = {}
    if input:
        try:
            inputs = json.loads(input)
        except json.JSONDecodeError:
            _usage_error("Invalid JSON format in --input option")
        if not isinstance(inputs, dict):
            _usage_error("--input must be a JSON object")
    if feature_url:
        inputs = {**inputs, "feature_url": feature_url}

    settings = _setup(config, verbose)
    typer.secho(f"Starting workflow: {workflow_id}", fg=typer.colors.BLUE)
    if verbose:
        typer.echo(f"Inputs: {json.dumps(inputs, indent=2)}")
        typer.echo(f"Config: {config or 'default'}")

    async def _run() -> Any:
        engine = create_engine(settings, events=_progress_events())
        workflow = await engine.workflow_loader.load_workflow(workflow_id)
        return await engine.execute(workflow, inputs)

    try:
        state = asyncio.run(_run())
    except Exception as exc:
        _fail(exc)

    typer.secho(f"Workflow {workflow_id} finished", fg=typer.colors.GREEN)
    _print_state_summary(state)


@app.command("continue")
def continue_(
    session_id: Optional[str] = typer.Option(None, "--session-id", help="Session to resume"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """
    Resume a paused workflow.

    Without --session-id the most recently updated paused session is resumed.
    """
    settings = _setup(config, verbose)

    async def _continue() -> Any:
        engine = create_engine(settings, events=_progress_events())
        target = session_id
        if target is None:
            paused = await engine.state_manager.list_sessions("paused")
            if not paused:
                return None
            target = paused[0].session_id
        typer.secho(f"Resuming session: {target}", fg=typer.colors.BLUE)
        return await engine.resume(target)

    try:
        state = asyncio.run(_continue())
    except Exception as exc:
        _fail(exc)

    if state is None:
        typer.echo("No paused sessions found")
        raise typer.Exit(code=EXIT_GENERAL_ERROR)
    _print_state_summary(state)


@app.command("status")
def status(
    session_id: Optional[str] = typer.Option(None, "--session-id", help="Session to inspect"),
    output_format: str = typer.Option("table", "--format", help="Output format (table|json)"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """Show the status of one session, or of all sessions."""
    _check_choice(output_format, ("table", "json"), "--format")
    settings = _setup(config)

    if session_id:
        engine = WorkflowEngine(state_manager=get_state_manager(config=settings))
        state = asyncio.run(engine.get_status(session_id))
        if state is None:
            typer.secho(f"Session {session_id} not found", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=EXIT_GENERAL_ERROR)
        if output_format == "json":
            typer.echo(state.model_dump_json(indent=2))
            return
        _print_state_summary(state)
        for execution in state.step_history:
            line = f"- {execution.step_id}: {execution.status}"
            if execution.error:
                line += f" ({execution.error})"
            typer.echo(line)
        return

    try:
        sessions = asyncio.run(get_state_manager(config=settings).list_sessions())
    except StateError as exc:
        _fail(exc)

    if output_format == "json":
        typer.echo(json.dumps([s.model_dump(mode="json") for s in sessions], indent=2))
        return
    if not sessions:
        typer.echo("No sessions found")
        return
    for info in sessions:
        typer.echo(
            f"{info.session_id}\t{info.workflow_id}\t{info.status}\t"
            f"step {info.current_step_index}\t{info.updated_at.isoformat()}"
        )


@workflow_app.command("list")
def workflow_list(
    output_format: str = typer.Option("table", "--format", help="Output format (table|json)"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """List workflow definitions found in the search directories."""
    _check_choice(output_format, ("table", "json"), "--format")
    settings = _setup(config)
    loader = WorkflowLoader(search_dirs=settings.workflow_dirs)
    workflows = asyncio.run(loader.list_workflows())

    if output_format == "json":
        typer.echo(json.dumps([w.model_dump(mode="json") for w in workflows], indent=2))
        return
    if not workflows:
        typer.echo("No workflows found")
        return
    for item in workflows:
        typer.echo(f"{item.id}\t{item.path}")


@workflow_app.command("show")
def workflow_show(
    workflow_id: str,
    output_format: str = typer.Option("yaml", "--format", help="Output format (yaml|json)"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """Show a workflow definition after validation."""
    _check_choice(output_format, ("yaml", "json"), "--format")
    settings = _setup(config)
    loader = WorkflowLoader(search_dirs=settings.workflow_dirs)
    try:
        workflow = asyncio.run(loader.load_workflow(workflow_id))
    except ValidationError as exc:
        _fail(exc)

    data = workflow.model_dump(mode="json", by_alias=True, exclude_none=True)
    if output_format == "json":
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, sort_keys=False).rstrip())


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """Validate a workflow file against the schema."""
    result = asyncio.run(WorkflowLoader().validate_workflow_file(path))
    if result.valid:
        typer.secho(f"{path} is valid", fg=typer.colors.GREEN)
        return
    typer.secho(f"{path} is invalid", fg=typer.colors.RED)
    for error in result.errors:
        typer.echo(f"  - {error.field}: {error.message}")
    raise typer.Exit(code=EXIT_VALIDATION_ERROR)


@session_app.command("list")
def session_list(
    status: Optional[str] = typer.Option(None, "--status", help="Only sessions with this status"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """List stored sessions, most recently updated first."""
    if status is not None:
        _check_choice(status, SESSION_STATUSES, "--status")
    settings = _setup(config)
    try:
        sessions = asyncio.run(get_state_manager(config=settings).list_sessions(status))
    except StateError as exc:
        _fail(exc)
    if not sessions:
        typer.echo("No sessions found")
        return
    for info in sessions:
        typer.echo(f"{info.session_id}\t{info.workflow_id}\t{info.status}")


def render_markdown(state: WorkflowSessionState) -> str:
    """Render a session as a Markdown report."""
    lines = [
        f"# Session {state.session_id}",
        "",
        f"- **Workflow:** {state.workflow_id}",
        f"- **Status:** {state.status}",
        f"- **Created:** {state.created_at.isoformat()}",
        f"- **Updated:** {state.updated_at.isoformat()}",
        "",
        "## Inputs",
        "",
        "```json",
        json.dumps(state.inputs, indent=2, default=str),
        "```",
        "",
        "## Steps",
        "",
    ]
    if not state.step_executions:
        lines.append("_No steps executed._")
    for execution in state.step_executions:
        lines.append(f"### {execution.step_id} ({execution.status})")
        lines.append("")
        if execution.error:
            lines.append(f"Error: {execution.error}")
            lines.append("")
        if execution.outputs:
            lines.extend(
                ["```json", json.dumps(execution.outputs, indent=2, default=str), "```", ""]
            )
    lines.extend(
        ["", "## Outputs", "", "```json", json.dumps(state.outputs, indent=2, default=str), "```"]
    )
    return "\n".join(lines) + "\n"


@session_app.command("export")
def session_export(
    session_id: Optional[str] = typer.Option(
        None, "--session-id", help="Session to export (defaults to the most recent)"
    ),
    output_format: str = typer.Option("json", "--format", help="Export format (json|markdown)"),
    output: Optional[Path] = typer.Option(None, "--output", help="Write to a file instead of stdout"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """Export a session's state and outputs."""
    _check_choice(output_format, ("json", "markdown"), "--format")
    settings = _setup(config)
    manager = get_state_manager(config=settings)

    async def _load() -> Optional[WorkflowSessionState]:
        target = session_id
        if target is None:
            sessions = await manager.list_sessions()
            if not sessions:
                return None
            target = sessions[0].session_id
        return await manager.load_session(target)

    try:
        state = asyncio.run(_load())
    except StateError as exc:
        _fail(exc)
    if state is None:
        typer.echo("No sessions found")
        raise typer.Exit(code=EXIT_GENERAL_ERROR)

    content = (
        state.model_dump_json(indent=2)
        if output_format == "json"
        else render_markdown(state)
    )
    if output is None:
        typer.echo(content)
        return
    output.write_text(content, encoding="utf-8")
    typer.secho(f"Exported session {state.session_id} to {output}", fg=typer.colors.GREEN)


@session_app.command("cleanup")
def session_cleanup(
    max_age_days: int = typer.Option(
        DEFAULT_CLEANUP_MAX_AGE_DAYS, "--max-age-days", help="Delete sessions older than this"
    ),
    statuses: Optional[List[str]] = typer.Option(
        None, "--status", help="Statuses to clean up (repeatable)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would be deleted"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to a configuration file"),
) -> None:
    """Delete old sessions."""
    if max_age_days < 0:
        _usage_error("--max-age-days must not be negative")
    for value in statuses or []:
        _check_choice(value, SESSION_STATUSES, "--status")
    settings = _setup(config)

    result = asyncio.run(
        get_state_manager(config=settings).cleanup_sessions(
            max_age=timedelta(days=max_age_days),
            statuses=statuses or None,
            dry_run=dry_run,
        )
    )
    verb = "Would delete" if dry_run else "Deleted"
    typer.echo(f"{verb} {len(result.deleted)} sessions")
    for deleted in result.deleted:
        typer.echo(f"  {deleted}")
    for failure in result.errors:
        typer.secho(f"  {failure.session_id}: {failure.error}", fg=typer.colors.RED)
    if result.errors:
        raise typer.Exit(code=EXIT_WORKFLOW_ERROR)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
