"""
WAU CLI - Rich rendering

Panels and tables for analysis reports, recommendations, supervisor
status, action results and backups.
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wau.cli.report import AnalysisReport
from wau.orchestrator.backup import BackupRecord, RestoreResult
from wau.orchestrator.executor import ActionResult, ActionStatus
from wau.state import Priority, ProjectState, Recommendation

PRIORITY_STYLES = {
    Priority.CRITICAL: "bold red",
    Priority.HIGH: "red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "dim",
}

STATUS_STYLES = {
    ActionStatus.APPLIED: "green",
    ActionStatus.SKIPPED: "yellow",
    ActionStatus.FAILED: "red",
}


def health_style(score: int) -> str:
    if score >= 80:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def show_analysis(console: Console, report: AnalysisReport) -> None:
    """Print the full one-shot analysis."""
    analysis = report.analysis
    frameworks = ", ".join(analysis.frameworks) or "none"
    style = health_style(report.health_score)
    console.print(
        Panel.fit(
            f"[bold]{report.metadata.name}[/bold] [dim]v{report.metadata.version}[/dim]\n"
            f"Language: [cyan]{analysis.language}[/cyan]\n"
            f"Frameworks: [cyan]{frameworks}[/cyan]\n"
            f"Health: [{style}]{report.health_score}/100[/{style}]",
            title="Project Analysis",
            border_style="blue",
        )
    )

    if report.installed_tools:
        console.print(f"\n[bold]Installed tools:[/bold] {', '.join(report.installed_tools)}")

    console.print()
    show_recommendations(console, report.recommendations)

    if report.specific_packages:
        console.print("\n[bold]Framework packages worth adding:[/bold]")
        for package in report.specific_packages:
            console.print(f"  • {package}")

    if report.refactor_suggestions:
        console.print("\n[bold]Refactor suggestions:[/bold]")
        for suggestion in report.refactor_suggestions:
            console.print(f"  • [cyan]{suggestion.filename}[/cyan]: {suggestion.suggestion}")

    if report.automation_ideas:
        console.print("\n[bold]Automation ideas:[/bold]")
        for idea in report.automation_ideas:
            console.print(f"  • [dim]{idea}[/dim]")


def show_recommendations(console: Console, recommendations: list[Recommendation]) -> None:
    """Print recommendations grouped by priority."""
    if not recommendations:
        console.print("[green]No recommendations - tooling looks complete.[/green]")
        return

    table = Table(title="Recommendations", show_header=True, header_style="bold")
    table.add_column("Priority")
    table.add_column("Tool", style="cyan")
    table.add_column("Category", style="dim")
    table.add_column("Reason")

    for rec in recommendations:
        style = PRIORITY_STYLES[rec.priority]
        table.add_row(f"[{style}]{rec.priority.value}[/{style}]", rec.tool, rec.category, rec.reason)

    console.print(table)


def show_status(
    console: Console,
    state: ProjectState,
    supervisor_state: str,
    watched_files: int | None = None,
) -> None:
    """Status panel shared by the status command and the watch dashboard."""
    style = health_style(state.health_score)
    last = state.last_analysis.strftime("%Y-%m-%d %H:%M:%S") if state.last_analysis else "never"
    lines = [
        f"Supervisor: [bold]{supervisor_state}[/bold]",
        f"Project: {state.project_path}",
        f"Language: [cyan]{state.language or 'unknown'}[/cyan]",
        f"Frameworks: {', '.join(state.frameworks) or 'none'}",
        f"Health: [{style}]{state.health_score}/100[/{style}]",
        f"Detected: {', '.join(sorted(state.detected_tools)) or 'none'}",
        f"Missing: {', '.join(sorted(state.missing_tools)) or 'none'}",
    ]
    if state.ignored_tools:
        lines.append(f"Ignored: [dim]{', '.join(sorted(state.ignored_tools))}[/dim]")
    if watched_files is not None:
        lines.append(f"Watched files: {watched_files}")
    lines.append(f"Last analysis: [dim]{last}[/dim]")

    console.print(Panel("\n".join(lines), title="WAU Status", border_style="blue"))


def show_action_result(console: Console, result: ActionResult) -> None:
    """Print one row per recommendation outcome."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    table.add_column("Files")
    table.add_column("Detail", style="dim")

    for outcome in result.outcomes:
        style = STATUS_STYLES[outcome.status]
        detail = outcome.error or outcome.reason
        table.add_row(
            outcome.tool,
            f"[{style}]{outcome.status.value}[/{style}]",
            ", ".join(outcome.files_changed) or "-",
            detail,
        )

    console.print(table)
    style = "green" if result.success else "red"
    console.print(f"[{style}]{result.summary()}[/{style}]")


def show_backups(console: Console, records: list[BackupRecord]) -> None:
    if not records:
        console.print("[dim]No recorded backups.[/dim]")
        return

    table = Table(title="Recorded changes", show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("When", style="dim")
    table.add_column("Backed up")
    table.add_column("Created")

    for record in records:
        table.add_row(
            record.tool,
            record.timestamp,
            "\n".join(f"{orig} → {backup}" for orig, backup in record.backups.items()) or "-",
            "\n".join(record.created) or "-",
        )
    console.print(table)


def show_restore_result(console: Console, result: RestoreResult) -> None:
    for path in result.restored:
        console.print(f"  [green]restored[/green] {path}")
    for path in result.removed:
        console.print(f"  [yellow]removed[/yellow]  {path}")
    for error in result.errors:
        console.print(f"  [red]error[/red]    {error}")
