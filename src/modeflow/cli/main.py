"""
Modeflow CLI main entry point.

Usage:
    modeflow init --session=<id>
    modeflow enter implementation --issue=42
    modeflow can-exit
    modeflow hook stop < payload.json
"""

import json
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from typing_extensions import Annotated

from .. import __version__
from ..config import ModeflowSettings, clear_config_cache, get_config_context, load_subphase_patterns
from ..config.loader import ConfigContext, describe_context
from ..documents import load_template, validate_spec_file
from ..errors import ConfigurationError, ModeflowError, ProjectNotFoundError
from ..hooks import handle_stop, parse_hook_input
from ..logging_config import get_logger, log_context, setup_logging
from ..session.lookup import find_project_dir, resolve_session_id
from ..validation import format_validation_errors, validate_phases
from ..workflow import TaskFactory, TaskRecord, TaskTracker
from ..workflow.session_manager import SessionManager

app = typer.Typer(
    name="modeflow",
    help="Mode, phase and task orchestration for AI coding-agent sessions",
    add_completion=False,
)
hook_app = typer.Typer(help="Handlers invoked by the host's hooks")
task_app = typer.Typer(help="Move native tasks forward, respecting dependencies")
app.add_typer(hook_app, name="hook")
app.add_typer(task_app, name="task")

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)

SessionOption = Annotated[
    Optional[str],
    typer.Option("--session", "-s", help="Session id (defaults to MODEFLOW_SESSION_ID or the latest session)"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON")]


@app.callback()
def main():
    """Apply the configured log level before any command runs."""
    try:
        settings = ModeflowSettings()
    except ValidationError as e:
        err_console.print(f"[red]Invalid modeflow settings:[/red] {e}")
        raise typer.Exit(1)
    setup_logging(settings.log_level)
    clear_config_cache()


@contextmanager
def handle_errors() -> Iterator[None]:
    """Map Modeflow errors to a rich message and exit code 1."""
    try:
        yield
    except ModeflowError as e:
        logger.error(str(e).splitlines()[0])
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def load_manager() -> SessionManager:
    return SessionManager(get_config_context())


def session_for(ctx: ConfigContext, explicit: Optional[str]) -> str:
    return resolve_session_id(ctx.project_root, explicit, ctx.settings.session_id)


def describe_record(record: TaskRecord) -> str:
    return f"[{record.id}] {record.subject}"


# ==============================================================================
# SESSION LIFECYCLE
# ==============================================================================


@app.command()
def init(
    session: SessionOption = None,
    force: Annotated[bool, typer.Option("--force", help="Reset an existing session")] = False,
):
    """Create the state document for a session."""
    with handle_errors():
        manager = load_manager()
        session_id = session or manager.ctx.settings.session_id or str(uuid.uuid4())
        state, created = manager.init_session(session_id, force=force)

    if created:
        console.print(f"[green]✓[/green] Initialized session [cyan]{session_id}[/cyan]")
    else:
        console.print(
            f"[yellow]Session {session_id} already exists[/yellow] "
            f"(mode: {state.current_mode}). Use --force to reset it."
        )


@app.command()
def enter(
    mode: Annotated[str, typer.Argument(help="Mode name or alias")],
    session: SessionOption = None,
    issue: Annotated[Optional[int], typer.Option("--issue", help="Issue number to link")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show the tasks without writing anything")] = False,
    as_json: JsonOption = False,
):
    """
    Enter a mode and generate its tasks.

    Examples:
        modeflow enter planning
        modeflow enter implementation --issue=42
        modeflow enter implementation --issue=42 --dry-run
    """
    with handle_errors():
        manager = load_manager()
        session_id = session or manager.ctx.settings.session_id or str(uuid.uuid4())
        result = manager.enter_mode(mode, session_id, issue=issue, dry_run=dry_run)

    if as_json:
        echo_json(result.to_dict())
        return

    title = "Dry run" if result.dry_run else "Entered"
    console.print(
        Panel.fit(
            f"[bold cyan]{title}: {result.mode}[/bold cyan]\n"
            f"[dim]Workflow: {result.workflow_id}  Session: {session_id}[/dim]",
            border_style="cyan",
        )
    )
    if result.spec_path:
        console.print(f"[dim]Spec: {result.spec_path}[/dim]")

    if result.tasks:
        table = Table(title=f"{len(result.tasks)} task(s)")
        table.add_column("ID", style="cyan")
        table.add_column("Task")
        table.add_column("Depends on", style="dim")
        for task in result.tasks:
            table.add_row(escape(task.id), escape(task.title), escape(", ".join(task.depends_on)))
        console.print(table)

    console.print()
    console.print(result.guidance.render(), markup=False)


@app.command(name="exit")
def exit_mode(session: SessionOption = None):
    """Complete the current mode and return to default."""
    with handle_errors():
        manager = load_manager()
        session_id = session_for(manager.ctx, session)
        active = manager.load_state(session_id).current_mode
        state = manager.exit_mode(session_id)

    if state.previous_mode == active:
        console.print(f"[green]✓[/green] Completed [cyan]{active}[/cyan]")
    else:
        console.print("[dim]Already in default mode.[/dim]")


@app.command()
def advance(
    phase: Annotated[str, typer.Argument(help="Phase id to move to")],
    session: SessionOption = None,
):
    """Move to another phase, recording the current one as completed."""
    with handle_errors():
        manager = load_manager()
        state = manager.advance_phase(session_for(manager.ctx, session), phase)

    console.print(f"[green]✓[/green] Current phase: [cyan]{state.current_phase}[/cyan]")
    if state.completed_phases:
        console.print(f"[dim]Completed: {', '.join(state.completed_phases)}[/dim]")


@app.command()
def link(
    issue: Annotated[Optional[int], typer.Argument(help="Issue number (omit with --clear)")] = None,
    session: SessionOption = None,
    title: Annotated[Optional[str], typer.Option("--title", help="Issue title")] = None,
    issue_type: Annotated[Optional[str], typer.Option("--type", help="Issue type (feature, bug, ...)")] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Unlink the current issue")] = False,
):
    """Link the session to an issue."""
    if issue is None and not clear:
        err_console.print("[red]Error:[/red] Give an issue number or --clear")
        raise typer.Exit(1)

    with handle_errors():
        manager = load_manager()
        session_id = session_for(manager.ctx, session)
        state = manager.link_issue(session_id, None if clear else issue, title=title, issue_type=issue_type)

    if state.issue_number is None:
        console.print("[green]✓[/green] Issue unlinked")
    else:
        console.print(f"[green]✓[/green] Linked issue [cyan]#{state.issue_number}[/cyan]")


@app.command()
def status(
    session: SessionOption = None,
    as_json: JsonOption = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Include configuration details")] = False,
):
    """Show the current mode, phase and task progress."""
    with handle_errors():
        manager = load_manager()
        report = manager.get_status(session_for(manager.ctx, session))

    if as_json:
        data = report.to_dict()
        if verbose:
            data["config"] = describe_context(manager.ctx)
        echo_json(data)
        return

    tasks = report.tasks
    console.print(f"[cyan]Session:[/cyan]  {report.session_id}")
    console.print(f"[cyan]Mode:[/cyan]     {report.mode}")
    console.print(f"[cyan]Phase:[/cyan]    {report.phase or '-'}")
    console.print(f"[cyan]Workflow:[/cyan] {report.workflow_id or '-'}")
    if report.issue_number is not None:
        console.print(f"[cyan]Issue:[/cyan]    #{report.issue_number}")
    if tasks.get("total"):
        console.print(
            f"[cyan]Tasks:[/cyan]    {tasks['completed']}/{tasks['total']} completed, "
            f"{tasks['in_progress']} in progress, {tasks['ready']} ready"
        )

    if verbose:
        details = describe_context(manager.ctx)
        console.print()
        console.print(f"[dim]Project: {details['project_root']}[/dim]")
        console.print(f"[dim]Config:  {details['config_path']}[/dim]")
        console.print(f"[dim]Modes:   {', '.join(details['modes'])}[/dim]")
        console.print(f"[dim]Subphase patterns: {', '.join(details['subphase_patterns'])}[/dim]")


@app.command(name="can-exit")
def can_exit(session: SessionOption = None, as_json: JsonOption = False):
    """
    Check the active mode's stop conditions.

    Exits 0 when the session may exit and 1 when it is blocked.
    """
    with handle_errors():
        manager = load_manager()
        decision, state = manager.can_exit(session_for(manager.ctx, session))

    if as_json:
        data = decision.to_dict()
        if not decision.can_exit:
            data["guidance"] = decision.guidance(state.issue_number)
        echo_json(data)
    elif decision.can_exit:
        console.print("[green]✓[/green] All stop conditions met. You may exit.")
    else:
        console.print(f"[yellow]Cannot exit yet[/yellow] ({decision.blocking.kind})\n")
        console.print(decision.guidance(state.issue_number), markup=False)

    if not decision.can_exit:
        raise typer.Exit(1)


# ==============================================================================
# VALIDATION
# ==============================================================================


@app.command(name="validate-template")
def validate_template(path: Annotated[Path, typer.Argument(help="Template file to check")]):
    """Validate a template's phases, including its subphase pattern reference."""
    with handle_errors():
        template = load_template(path)
        result = validate_phases(template.phases, str(path))

        pattern_error = None
        if result.valid:
            try:
                project_root: Optional[Path] = find_project_dir(path.resolve().parent)
            except ProjectNotFoundError:
                project_root = None
            factory = TaskFactory(result.phases, load_subphase_patterns(project_root))
            if factory.container_phase is not None:
                try:
                    factory.resolve_subphase_pattern()
                except ConfigurationError as e:
                    pattern_error = str(e)

    if not result.valid:
        console.print(format_validation_errors(result), markup=False)
        raise typer.Exit(1)
    if pattern_error:
        err_console.print(f"[red]Error:[/red] {escape(pattern_error)}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {path}: {len(result.phases)} phase(s) valid")


@app.command(name="validate-spec")
def validate_spec(path: Annotated[Path, typer.Argument(help="Spec file to check")]):
    """Check that a spec document can drive task generation."""
    report = validate_spec_file(path)

    for warning in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    for error in report.errors:
        err_console.print(f"[red]Error:[/red] {escape(error)}")

    if not report.valid:
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/green] {path}: {report.phases} phase(s), {report.total_tasks} task(s)"
    )


# ==============================================================================
# HOOKS AND TASKS
# ==============================================================================


@hook_app.command("stop")
def hook_stop():
    """
    Stop hook: reads the host payload on stdin.

    Prints nothing to allow the stop, or a block decision as JSON.
    """
    payload = parse_hook_input(sys.stdin.read())
    try:
        manager = load_manager()
    except ModeflowError as e:
        logger.debug(f"Stop hook outside a configured project: {e}")
        return

    response = handle_stop(manager, payload)
    if response is not None:
        typer.echo(json.dumps(response))


@task_app.command("start")
def task_start(
    task_id: Annotated[str, typer.Argument(help="Native id (3) or generated id (p2.1:impl)")],
    session: SessionOption = None,
):
    """Mark a task in progress."""
    with handle_errors():
        manager = load_manager()
        session_id = session_for(manager.ctx, session)
        with log_context(session_id):
            record = TaskTracker(manager.tasks_dir(session_id)).mark_in_progress(task_id)
    console.print(f"[cyan]→[/cyan] {escape(describe_record(record))}")


@task_app.command("done")
def task_done(
    task_id: Annotated[str, typer.Argument(help="Native id (3) or generated id (p2.1:impl)")],
    session: SessionOption = None,
):
    """Mark a task completed."""
    with handle_errors():
        manager = load_manager()
        session_id = session_for(manager.ctx, session)
        tracker = TaskTracker(manager.tasks_dir(session_id))
        with log_context(session_id):
            record = tracker.mark_complete(task_id)
        next_task = tracker.first_pending()

    console.print(f"[green]✓[/green] {escape(describe_record(record))}")
    if next_task is not None:
        console.print(f"[dim]Next: {escape(describe_record(next_task))}[/dim]")


@app.command()
def version():
    """Show Modeflow version information."""
    console.print(f"[cyan]Modeflow v{__version__}[/cyan]")


if __name__ == "__main__":
    app()
