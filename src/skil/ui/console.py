"""Rich rendering of command reports."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from skil.ui.formatting import (
    format_checksum_short,
    format_installed_at_display,
    format_source_display,
)

if TYPE_CHECKING:
    from skil.commands.engine import (
        AddReport,
        CheckReport,
        InitReport,
        InstallAllReport,
        ListReport,
        RemoveReport,
    )
    from skil.drift import UpdateReport
    from skil.install.installer import InstallReport

console = Console()
error_console = Console(stderr=True)

_STATE_STYLES = {
    "up_to_date": "[green]up to date[/green]",
    "stale": "[yellow]stale[/yellow]",
    "error": "[red]error[/red]",
}


def print_error(message: str) -> None:
    error_console.print(f"[red]Error:[/red] {message}", highlight=False)


def render_install_report(report: InstallReport, *, verb: str = "Installed") -> None:
    for outcome in report.succeeded:
        label = "unchanged" if outcome.status == "unchanged" else verb.lower()
        mode = f" ({outcome.mode})" if outcome.mode else ""
        console.print(
            f"[green]✓[/green] {outcome.skill} -> {outcome.agent}{mode} [dim]{label}[/dim]",
            highlight=False,
        )
    for outcome in report.skipped:
        console.print(
            f"[yellow]-[/yellow] {outcome.skill} -> {outcome.agent} [dim]skipped: {outcome.detail}[/dim]",
            highlight=False,
        )
    for outcome in report.failed:
        console.print(
            f"[red]✗[/red] {outcome.skill} -> {outcome.agent}: {outcome.detail}",
            highlight=False,
        )
    console.print(
        f"{verb} {len(report.succeeded)}, skipped {len(report.skipped)}, failed {len(report.failed)}",
        highlight=False,
    )


def render_add(report: AddReport) -> None:
    if report.listed:
        table = Table(title=f"Skills in {format_source_display(report.source_id)}")
        table.add_column("Name", style="cyan")
        table.add_column("Path")
        table.add_column("Description")
        for skill in report.listed:
            table.add_row(skill.name, skill.relative_path, skill.description)
        console.print(table)
        return
    console.print(
        f"[bold]{format_source_display(report.source_id)}[/bold] "
        f"[dim]@ {format_checksum_short(report.checksum)}[/dim]",
        highlight=False,
    )
    render_install_report(report.install)


def render_install_all(report: InstallAllReport) -> None:
    if not report.results:
        console.print(f"No sources tracked in {report.manifest_path}")
        return
    for result in report.results:
        console.print(f"[bold]{format_source_display(result.source_id)}[/bold]", highlight=False)
        if result.error:
            console.print(f"[red]✗[/red] {result.error}", highlight=False)
        if result.install is not None:
            render_install_report(result.install)


def render_remove(report: RemoveReport) -> None:
    render_install_report(report.install, verb="Removed")
    for source_id, skill in report.untracked:
        console.print(
            f"[dim]Untracked {skill} from {format_source_display(source_id)}[/dim]",
            highlight=False,
        )


def render_list(report: ListReport) -> None:
    if not report.installed:
        console.print(f"No skills installed ({report.scope})")
        return
    table = Table(title=f"Installed skills ({report.scope})")
    table.add_column("Skill", style="cyan")
    table.add_column("Agent")
    table.add_column("Source")
    table.add_column("Mode")
    table.add_column("Revision")
    table.add_column("Installed")
    for item in report.installed:
        record = item.record
        if record is None:
            continue
        tracked = "" if record.source_id in report.tracked else " [dim](untracked)[/dim]"
        table.add_row(
            item.skill,
            item.agent.name,
            f"{format_source_display(record.source_id)}{tracked}",
            "symlink" if item.is_link else "copy",
            format_checksum_short(record.checksum),
            format_installed_at_display(record.installed_at),
        )
    console.print(table)


def render_check(report: CheckReport) -> None:
    if not report.statuses:
        console.print(f"No sources tracked in {report.manifest_path}")
        return
    table = Table(title="Source status")
    table.add_column("Source", style="cyan")
    table.add_column("State")
    table.add_column("Recorded")
    table.add_column("Available")
    for status in report.statuses:
        available = status.error if status.error else format_checksum_short(status.available)
        table.add_row(
            format_source_display(status.source_id),
            _STATE_STYLES[status.state],
            format_checksum_short(status.current),
            available,
        )
    console.print(table)


def render_update(report: UpdateReport) -> None:
    for status in report.errors:
        console.print(
            f"[red]✗[/red] {format_source_display(status.source_id)}: {status.error}",
            highlight=False,
        )
    if not report.updates:
        if not report.errors:
            console.print("Everything is up to date")
        return
    for update in report.updates:
        source = format_source_display(update.source_id)
        if update.outcome == "updated":
            console.print(
                f"[green]✓[/green] {source} {format_checksum_short(update.previous)} -> "
                f"{format_checksum_short(update.current)}",
                highlight=False,
            )
        elif update.outcome == "skipped":
            console.print(f"[yellow]-[/yellow] {source} skipped: {update.detail}", highlight=False)
        else:
            console.print(f"[red]✗[/red] {source}: {update.detail or 'install failed'}", highlight=False)
        if update.vanished:
            console.print(f"  [dim]vanished upstream: {', '.join(update.vanished)}[/dim]", highlight=False)
        if update.install is not None and update.install.failed:
            render_install_report(update.install)


def render_init(report: InitReport) -> None:
    console.print(f"Created {report.path}", highlight=False)
