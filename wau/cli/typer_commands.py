"""
WAU CLI - Typer Commands

One-shot commands (analyze, setup), the supervisor surface (watch,
status, stop, recommendations, ignore, rollback, backups) and log viewing.
"""

import asyncio
import json
import logging
import os
import signal
import time
from pathlib import Path

import typer
from rich.console import Console

from wau import __version__
from wau.cli.render import (
    show_action_result,
    show_analysis,
    show_backups,
    show_recommendations,
    show_restore_result,
    show_status,
)
from wau.cli.report import build_report
from wau.config import SupervisorConfig, load_supervisor_config, save_ignored_tool
from wau.exceptions import RollbackError, WauError
from wau.logging.viewer import calculate_stats, format_entry_line, format_stats, query_logs
from wau.orchestrator import (
    ActionExecutor,
    EventType,
    ExecutionOptions,
    NotificationDispatcher,
    Supervisor,
    SupervisorEvent,
)
from wau.orchestrator.backup import BackupManifest, find_backup_files, restore_tool
from wau.orchestrator.supervisor import pid_is_alive, read_pid_marker
from wau.state import load_project_state

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="wau",
    help="Watches a project and keeps its developer tooling set up",
    add_completion=False,
    no_args_is_help=True,
)

PathOption = typer.Option(".", "--path", "-p", help="Project directory")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"wau {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    """Watches a project and keeps its developer tooling set up."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {error}")
    return typer.Exit(1)


def _project_root(path: str) -> Path:
    root = Path(path).expanduser().resolve()
    if not root.is_dir():
        console.print(f"[bold red]Project directory does not exist:[/bold red] {root}")
        raise typer.Exit(1)
    return root


@app.command()
def analyze(
    path: str = PathOption,
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Analyze the project once and print recommendations."""
    root = _project_root(path)
    try:
        report = build_report(root)
    except WauError as e:
        raise _fail(e)

    if json_output:
        console.print_json(json.dumps(report.to_dict()))
        return
    show_analysis(console, report)


@app.command()
def setup(
    path: str = PathOption,
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change, write nothing"),
    force: bool = typer.Option(False, "--force", help="Overwrite tools that are already configured"),
    skip_backup: bool = typer.Option(
        False, "--skip-backup", help="Do not back up files (version-controlled trees only)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without confirmation"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Confirm each tool"),
    run_commands: bool = typer.Option(
        False, "--run-commands", help="Run each tool's setup command (npm/pip install)"
    ),
) -> None:
    """Apply the current recommendations to the project."""
    root = _project_root(path)
    try:
        report = build_report(root)
    except WauError as e:
        raise _fail(e)

    if not report.recommendations:
        console.print("[green]Nothing to set up - tooling looks complete.[/green]")
        return

    show_recommendations(console, report.recommendations)

    if not (yes or dry_run or interactive):
        if not typer.confirm(f"Apply {len(report.recommendations)} recommendation(s)?"):
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    executor = ActionExecutor(confirm=lambda rec: typer.confirm(f"Set up {rec.tool}?"))
    options = ExecutionOptions(
        dry_run=dry_run,
        force=force,
        skip_backup=skip_backup,
        interactive=interactive,
        run_setup_commands=run_commands,
    )
    result = asyncio.run(executor.execute_recommendations(root, report.recommendations, options))
    show_action_result(console, result)

    if not result.success:
        raise typer.Exit(1)


@app.command()
def watch(
    path: str = PathOption,
    dashboard: bool = typer.Option(False, "--dashboard", help="Show a status panel after each analysis"),
    auto_setup: bool = typer.Option(False, "--auto-setup", help="Apply recommendations automatically"),
    auto_fix: bool = typer.Option(False, "--auto-fix", help="Fix missing tooling automatically"),
    webhook: str = typer.Option(None, "--webhook", help="POST events to this URL"),
    no_desktop: bool = typer.Option(False, "--no-desktop", help="Disable desktop notifications"),
    debounce: float = typer.Option(None, "--debounce", help="Seconds of quiet before re-analysis"),
) -> None:
    """Supervise the project until stopped (Ctrl+C or `wau stop`)."""
    root = _project_root(path)
    try:
        config = load_supervisor_config(
            root,
            auto_fix=auto_fix or None,
            auto_setup=auto_setup or None,
            dashboard=dashboard or None,
            debounce_seconds=debounce,
        )
        if webhook:
            config.notifications.webhook_url = webhook
        if no_desktop:
            config.notifications.desktop = False
    except WauError as e:
        raise _fail(e)

    try:
        asyncio.run(_run_watch(root, config))
    except WauError as e:
        raise _fail(e)


async def _run_watch(root: Path, config: SupervisorConfig) -> None:
    supervisor = Supervisor(root, config=config)
    dispatcher = NotificationDispatcher(config.notifications, console=console)
    supervisor.subscribe(dispatcher.handle)

    if config.dashboard:

        def render_dashboard(event: SupervisorEvent) -> None:
            if event.type is EventType.ANALYSIS_COMPLETED:
                status = supervisor.get_status()
                show_status(
                    console,
                    status.state,
                    status.supervisor_state.name.lower(),
                    status.watched_files,
                )

        supervisor.subscribe(render_dashboard)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Cannot install handler for {sig.name}")

    try:
        await supervisor.start()
        console.print(
            f"[bold]Watching[/bold] {root} "
            f"[dim]({supervisor.get_status().watched_files} files, Ctrl+C to stop)[/dim]"
        )

        waiter = asyncio.ensure_future(supervisor.wait_until_stopped())
        stopper = asyncio.ensure_future(stop_requested.wait())
        done, _ = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)

        if stopper in done and supervisor.is_running:
            console.print("\n[yellow]Stopping supervisor...[/yellow]")
            await supervisor.stop()
        stopper.cancel()
        await waiter
    finally:
        await dispatcher.aclose()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


@app.command()
def status(
    path: str = PathOption,
    json_output: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show the supervisor state and the last analysis."""
    root = _project_root(path)
    pid = read_pid_marker(root)
    running = pid is not None and pid_is_alive(pid)
    state = load_project_state(root)

    if json_output:
        console.print_json(
            json.dumps(
                {
                    "running": running,
                    "pid": pid if running else None,
                    "state": state.to_dict() if state else None,
                }
            )
        )
        return

    if state is None:
        if running:
            console.print(f"[green]Supervisor running[/green] (pid {pid}), first analysis pending")
        else:
            console.print("[dim]No supervisor session found. Start one with[/dim] [cyan]wau watch[/cyan]")
        return

    label = f"running (pid {pid})" if running else "not running, previous session found"
    show_status(console, state, label)


@app.command()
def stop(
    path: str = PathOption,
    timeout: float = typer.Option(30.0, "--timeout", help="Seconds to wait for shutdown"),
) -> None:
    """Stop the supervisor running for the project."""
    root = _project_root(path)
    pid = read_pid_marker(root)
    if pid is None or not pid_is_alive(pid):
        console.print("[yellow]No running supervisor for this project.[/yellow]")
        raise typer.Exit(1)

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        raise _fail(e)

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if read_pid_marker(root) != pid or not pid_is_alive(pid):
            console.print("[green]Supervisor stopped.[/green]")
            return
        time.sleep(0.2)

    console.print(f"[red]Supervisor (pid {pid}) did not stop within {timeout:.0f}s[/red]")
    raise typer.Exit(1)


@app.command()
def recommendations(
    path: str = PathOption,
    json_output: bool = typer.Option(False, "--json", help="Print recommendations as JSON"),
) -> None:
    """List current recommendations, most important first."""
    root = _project_root(path)
    try:
        report = build_report(root)
    except WauError as e:
        raise _fail(e)

    if json_output:
        console.print_json(json.dumps([r.to_dict() for r in report.recommendations]))
        return
    show_recommendations(console, report.recommendations)


@app.command()
def ignore(
    tool: str = typer.Argument(..., help="Tool to stop recommending"),
    path: str = PathOption,
) -> None:
    """Stop recommending a tool for this project."""
    root = _project_root(path)
    try:
        added = save_ignored_tool(root, tool)
    except WauError as e:
        raise _fail(e)

    if not added:
        console.print(f"[dim]{tool} is already ignored[/dim]")
        return

    console.print(f"[green]Ignoring {tool}[/green]")
    pid = read_pid_marker(root)
    if pid is not None and pid_is_alive(pid):
        console.print("[dim]The running supervisor applies this from its next analysis.[/dim]")


@app.command()
def rollback(
    tool: str = typer.Argument(..., help="Tool whose changes should be undone"),
    path: str = PathOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Restore without confirmation"),
) -> None:
    """Restore the files a tool setup changed from their backups."""
    root = _project_root(path)
    records = BackupManifest(root).records_for(tool)
    if not records:
        raise _fail(RollbackError(f"No recorded changes for '{tool}'", tool))

    restored = sum(len(r.backups) for r in records)
    created = sum(len(r.created) for r in records)
    console.print(f"{tool}: {restored} file(s) to restore, {created} created file(s) to remove")
    if not yes and not typer.confirm("Roll back?"):
        console.print("[dim]Cancelled[/dim]")
        raise typer.Exit(0)

    try:
        result = restore_tool(root, tool)
    except WauError as e:
        raise _fail(e)

    show_restore_result(console, result)
    if not result.success:
        raise typer.Exit(1)
    console.print(f"[green]Rolled back {tool}[/green]")


@app.command()
def backups(path: str = PathOption) -> None:
    """List recorded backups for the project."""
    root = _project_root(path)
    records = BackupManifest(root).load()
    show_backups(console, records)

    recorded = {backup for r in records for backup in r.backups.values()}
    untracked = [
        p for p in find_backup_files(root) if p.relative_to(root).as_posix() not in recorded
    ]
    if untracked:
        console.print(f"\n[dim]{len(untracked)} backup file(s) not in the manifest:[/dim]")
        for backup_path in untracked:
            console.print(f"  [dim]{backup_path.relative_to(root)}[/dim]")


@app.command()
def logs(
    log_type: str = typer.Option("all", "--type", "-t", help="Log type: supervisor, actions, all"),
    since: str = typer.Option(None, "--since", "-s", help="Time filter (ISO or relative: 1h, 30m, 2d)"),
    path: str = typer.Option(None, "--path", "-p", help="Only entries for this project"),
    tool: str = typer.Option(None, "--tool", help="Only actions for this tool"),
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    stats: bool = typer.Option(False, "--stats", help="Show statistics instead of entries"),
) -> None:
    """Show recent supervisor and action log entries."""
    project = str(Path(path).expanduser().resolve()) if path else None
    try:
        entries = query_logs(
            log_type=log_type,
            since=since,
            project=project,
            tool=tool,
            limit=1000 if stats else tail,
        )
    except ValueError as e:
        raise _fail(e)

    if not entries:
        console.print("[dim]No log entries found[/dim]")
        return

    if stats:
        console.print(format_stats(calculate_stats(entries)))
        return

    for entry in reversed(entries):
        line = format_entry_line(entry)
        if entry.get("error") or entry.get("status") == "failed":
            console.print(f"[red]{line}[/red]", highlight=False)
        elif entry.get("_source") == "actions":
            console.print(f"[green]{line}[/green]", highlight=False)
        else:
            console.print(f"[dim]{line}[/dim]", highlight=False)


def main() -> None:
    """Entry point wrapper that invokes the Typer app."""
    app()


if __name__ == "__main__":
    main()
