"""The ``skil`` command line."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer

from skil.commands import engine
from skil.commands.context import CommandContext
from skil.config import get_settings
from skil.core.logging.logger import configure_logging
from skil.errors import SkilError
from skil.ui import console as ui
from skil.ui.prompts import make_prompter

if TYPE_CHECKING:
    from collections.abc import Coroutine

app = typer.Typer(
    name="skil",
    help="Install and track agent skills from git repositories, local paths and archives.",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(
        None, "--config", help="Read settings from this YAML file only", exists=True, dir_okay=False
    ),
) -> None:
    """Install and track agent skills."""
    settings = get_settings(config)
    configure_logging(settings.logger, verbose=verbose)


def _context(*, yes: bool = False) -> CommandContext:
    return CommandContext.create(settings=get_settings(), prompter=make_prompter(yes=yes))


def _run(coroutine: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coroutine)
    except SkilError as exc:
        ui.print_error(str(exc))
        raise typer.Exit(1) from exc


def _exit_for(ok: bool) -> None:
    if not ok:
        raise typer.Exit(1)


@app.command()
def add(
    source: str = typer.Argument(..., help="owner/repo, git URL, local path, or archive"),
    global_: bool = typer.Option(False, "--global", "-g", help="Install for the current user"),
    copy: bool = typer.Option(False, "--copy", help="Copy files instead of symlinking"),
    agent: list[str] | None = typer.Option(None, "--agent", "-a", help="Target agent (repeatable, '*' for all)"),
    skill: list[str] | None = typer.Option(None, "--skill", "-s", help="Skill to install (repeatable, '*' for all)"),
    list_only: bool = typer.Option(False, "--list", "-l", help="List skills in the source and exit"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    all_: bool = typer.Option(False, "--all", help="Install every skill for every agent"),
    full_depth: bool = typer.Option(False, "--full-depth", help="Keep the source's directory layout"),
) -> None:
    """Install skills from a source and start tracking it."""
    ctx = _context(yes=yes)
    report = _run(
        engine.add(
            ctx,
            source,
            global_=global_,
            copy=copy,
            agents=agent or [],
            skills=skill or [],
            list_only=list_only,
            yes=yes,
            all_=all_,
            full_depth=full_depth,
        )
    )
    ui.render_add(report)
    _exit_for(report.ok)


@app.command()
def install(
    global_: bool = typer.Option(False, "--global", "-g", help="Use the global manifest"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
) -> None:
    """Install every tracked skill at its recorded revision."""
    report = _run(engine.install(_context(yes=yes), global_=global_))
    ui.render_install_all(report)
    _exit_for(report.ok)


@app.command()
def remove(
    skills: list[str] | None = typer.Argument(None, help="Skills to remove"),
    global_: bool = typer.Option(False, "--global", "-g", help="Remove global installs"),
    agent: list[str] | None = typer.Option(None, "--agent", "-a", help="Only remove for these agents"),
    skill: list[str] | None = typer.Option(None, "--skill", "-s", help="Skill to remove (repeatable)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    all_: bool = typer.Option(False, "--all", help="Remove every managed skill"),
) -> None:
    """Remove installed skills and stop tracking them."""
    requested = [*(skills or []), *(skill or [])]
    report = _run(
        engine.remove(
            _context(yes=yes),
            requested,
            agents=agent or [],
            global_=global_,
            yes=yes,
            all_=all_,
        )
    )
    ui.render_remove(report)
    _exit_for(report.ok)


@app.command(name="list")
def list_command(
    global_: bool = typer.Option(False, "--global", "-g", help="List global installs"),
    agent: list[str] | None = typer.Option(None, "--agent", "-a", help="Only list these agents"),
) -> None:
    """List installed skills."""
    report = _run(engine.list_installed(_context(), global_=global_, agents=agent or []))
    ui.render_list(report)


@app.command()
def check(
    global_: bool = typer.Option(False, "--global", "-g", help="Use the global manifest"),
) -> None:
    """Report which tracked sources have upstream changes."""
    report = _run(engine.check(_context(), global_=global_))
    ui.render_check(report)
    _exit_for(report.ok)


@app.command()
def update(
    global_: bool = typer.Option(False, "--global", "-g", help="Use the global manifest"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
) -> None:
    """Update stale sources and reinstall their skills."""
    report = _run(engine.update(_context(yes=yes), global_=global_, yes=yes))
    ui.render_update(report)
    _exit_for(report.ok)


@app.command()
def init(
    name: str | None = typer.Argument(None, help="Create <name>/SKILL.md instead of ./SKILL.md"),
) -> None:
    """Create a SKILL.md template."""
    report = _run(engine.init(_context(), name))
    ui.render_init(report)
