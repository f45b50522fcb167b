"""Command entry points. Each loads state, does its work, and flushes the manifest once."""

from __future__ import annotations

import asyncio
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from skil import drift
from skil.agents import resolve_agent_names
from skil.core.logging.logger import get_logger
from skil.errors import InstallConflict, SelectionRequired, SkilError, UnknownAgent, UnknownSkill
from skil.install.installer import InstalledSkill, InstallOutcome, InstallReport
from skil.manifest import ManifestEntry
from skil.skills.discovery import SKILL_FILENAME, discover, require_skills, sanitize_name
from skil.skills.selection import SelectionFlags, SkillAgentPair, select

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skil.agents import AgentConfig, Scope
    from skil.commands.context import CommandContext
    from skil.install.installer import Installer
    from skil.manifest import Manifest
    from skil.skills.discovery import DiscoveredSkill
    from skil.sources.models import ResolvedSource, SourceRef

logger = get_logger(__name__)

SKILL_TEMPLATE = """---
name: {name}
description: Describe what this skill does and when an agent should use it.
---

# {name}

Instructions for the agent go here.
"""


@dataclass
class AddReport:
    source_id: str
    checksum: str | None = None
    listed: list[DiscoveredSkill] = field(default_factory=list)
    install: InstallReport = field(default_factory=InstallReport)
    manifest_path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.install.ok


@dataclass
class SourceInstallResult:
    source_id: str
    install: InstallReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.install is None or self.install.ok)


@dataclass
class InstallAllReport:
    manifest_path: Path
    results: list[SourceInstallResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)


@dataclass
class RemoveReport:
    install: InstallReport = field(default_factory=InstallReport)
    untracked: list[tuple[str, str]] = field(default_factory=list)
    """``(source_id, skill)`` pairs no longer tracked by the manifest."""

    @property
    def ok(self) -> bool:
        return self.install.ok


@dataclass
class ListReport:
    scope: Scope
    installed: list[InstalledSkill] = field(default_factory=list)
    tracked: dict[str, ManifestEntry] = field(default_factory=dict)


@dataclass
class CheckReport:
    manifest_path: Path
    statuses: list[drift.DriftStatus] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(status.state != "error" for status in self.statuses)


@dataclass
class InitReport:
    path: Path


async def add(
    ctx: CommandContext,
    source: str,
    *,
    global_: bool = False,
    copy: bool = False,
    agents: Sequence[str] = (),
    skills: Sequence[str] = (),
    list_only: bool = False,
    yes: bool = False,
    all_: bool = False,
    full_depth: bool = False,
) -> AddReport:
    store, scope = ctx.manifest_store(global_)
    manifest = store.load()
    ref = ctx.resolver.parse(source)
    report = AddReport(source_id=ref.source_id, manifest_path=store.path)

    resolved = await asyncio.to_thread(ctx.resolver.fetch, ref)
    with resolved:
        report.checksum = resolved.checksum
        discovered = discover(resolved.working_copy, full_depth, source_id=ref.source_id)
        require_skills(discovered, ref.source_id)

        installer = ctx.installer(scope)
        selection = select(
            discovered,
            skills,
            agents,
            SelectionFlags(all=all_, list_only=list_only, yes=yes),
            ctx.prompter,
            ctx.agents,
            installer.is_installed,
            default_agents=ctx.settings.default_agents,
        )
        if list_only:
            report.listed = selection.listed
            return report

        mode = "copy" if copy else ctx.settings.install_mode
        report.install = installer.install(selection.pairs, mode, checksum=resolved.checksum)
        for pair in selection.declined:
            report.install.skipped.append(
                InstallOutcome(
                    pair.skill.name,
                    pair.agent.name,
                    installer.target_for(pair.skill, pair.agent),
                    "skipped",
                    "overwrite declined",
                )
            )

    succeeded = report.install.succeeded
    if succeeded:
        manifest.upsert_entry(
            ManifestEntry.from_ref(
                ref,
                checksum=resolved.checksum,
                skills={outcome.skill for outcome in succeeded},
                agents={outcome.agent for outcome in succeeded},
                scope=scope,
                mode=mode,
                full_depth=full_depth,
            )
        )
    store.save(manifest)
    return report


async def install(ctx: CommandContext, *, global_: bool = False) -> InstallAllReport:
    """Reinstall every tracked skill at its recorded checksum for its recorded agents."""
    store, _scope = ctx.manifest_store(global_, auto=True)
    manifest = store.load()
    report = InstallAllReport(manifest_path=store.path)
    entries = [manifest.entries[source_id] for source_id in sorted(manifest.entries)]

    with ExitStack() as stack:
        fetched = await _fetch_all(
            ctx, [(entry.to_ref(), entry.checksum) for entry in entries], stack
        )
        for entry, result in zip(entries, fetched, strict=True):
            if isinstance(result, Exception):
                report.results.append(SourceInstallResult(entry.source_id, error=str(result)))
                continue
            try:
                report.results.append(_install_entry(ctx, entry, result))
            except Exception as exc:  # noqa: BLE001
                logger.error("Install failed", data={"source": entry.source_id, "error": repr(exc)})
                report.results.append(SourceInstallResult(entry.source_id, error=str(exc)))

    store.save(manifest)
    return report


def _install_entry(ctx: CommandContext, entry: ManifestEntry, resolved: ResolvedSource) -> SourceInstallResult:
    if resolved.checksum != entry.checksum:
        logger.warning(
            "Source content differs from the recorded checksum",
            data={"source": entry.source_id, "recorded": entry.checksum, "found": resolved.checksum},
        )
    discovered = {
        skill.name: skill
        for skill in discover(resolved.working_copy, entry.full_depth, source_id=entry.source_id)
    }
    missing = [name for name in entry.skills if name not in discovered]
    targets, unknown = resolve_agent_names(entry.agents, ctx.agents)

    installer = ctx.installer(entry.scope)
    pairs = [
        SkillAgentPair(skill=discovered[name], agent=agent)
        for name in entry.skills
        if name in discovered
        for agent in targets
    ]
    result = SourceInstallResult(
        entry.source_id, install=installer.install(pairs, entry.mode, checksum=resolved.checksum)
    )
    problems: list[str] = []
    if missing:
        problems.append(f"skills missing upstream: {', '.join(missing)}")
    if unknown:
        problems.append(f"unknown agents: {', '.join(unknown)}")
    if problems:
        result.error = "; ".join(problems)
    return result


async def _fetch_all(
    ctx: CommandContext,
    refs: Sequence[tuple[SourceRef, str | None]],
    stack: ExitStack,
) -> list[ResolvedSource | Exception]:
    """Fetch concurrently; failures come back in place of their ``ResolvedSource``."""
    semaphore = asyncio.Semaphore(ctx.settings.max_parallel_fetches)

    async def _fetch(ref: SourceRef, pinned: str | None) -> ResolvedSource:
        async with semaphore:
            return await asyncio.to_thread(ctx.resolver.fetch, ref, pinned=pinned)

    results = await asyncio.gather(*(_fetch(ref, pinned) for ref, pinned in refs), return_exceptions=True)
    for result in results:
        if not isinstance(result, BaseException):
            stack.callback(result.cleanup)
    collected: list[ResolvedSource | Exception] = []
    for (ref, _pinned), result in zip(refs, results, strict=True):
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception) and not isinstance(result, SkilError):
            logger.error("Fetch failed", data={"source": ref.source_id, "error": repr(result)})
        collected.append(result)
    return collected


async def remove(
    ctx: CommandContext,
    skills: Sequence[str] = (),
    *,
    agents: Sequence[str] = (),
    global_: bool = False,
    yes: bool = False,
    all_: bool = False,
) -> RemoveReport:
    store, scope = ctx.manifest_store(global_)
    manifest = store.load()
    installer = ctx.installer(scope)

    if agents:
        target_agents, unknown = resolve_agent_names(agents, ctx.agents)
        if unknown:
            raise UnknownAgent(unknown, [agent.name for agent in ctx.agents])
    else:
        target_agents = list(ctx.agents)

    installed = installer.scan_installed(target_agents)
    chosen = _choose_removals(ctx, installer, installed, skills, target_agents, all_=all_)

    report = RemoveReport()
    if not chosen:
        return report
    if not yes:
        names = sorted({item.skill for item in chosen})
        if not ctx.prompter.confirm(f"Remove {len(chosen)} install(s) of {', '.join(names)}?"):
            for item in chosen:
                report.install.skipped.append(
                    InstallOutcome(item.skill, item.agent.name, item.path, "skipped", "removal declined")
                )
            return report

    report.install = installer.remove(chosen)
    removed = {
        (item.source_id, item.skill)
        for item in chosen
        if item.source_id is not None
        and any(outcome.target == item.path for outcome in report.install.succeeded)
    }
    if removed:
        report.untracked = _untrack_removed(manifest, installer.scan_installed(ctx.agents), removed)
    store.save(manifest)
    return report


def _choose_removals(
    ctx: CommandContext,
    installer: Installer,
    installed: list[InstalledSkill],
    requested: Sequence[str],
    agents: Sequence[AgentConfig],
    *,
    all_: bool,
) -> list[InstalledSkill]:
    if all_ or "*" in requested:
        return installed

    if not requested:
        if not ctx.prompter.interactive:
            raise SelectionRequired("skills")
        options = sorted({item.skill for item in installed})
        picked = ctx.prompter.select_many("Select skills to remove", [(name, name) for name in options])
        if not picked:
            raise SelectionRequired("skills")
        return [item for item in installed if item.skill in picked]

    chosen: list[InstalledSkill] = []
    unmatched: list[str] = []
    for name in requested:
        matches = [
            item for item in installed if item.skill == name or item.path.name == sanitize_name(name)
        ]
        if matches:
            chosen.extend(item for item in matches if item not in chosen)
            continue
        # Unmanaged directories are handed to the installer so the refusal is reported.
        unmanaged = [
            InstalledSkill(agent=agent, path=installer.agent_root(agent) / sanitize_name(name))
            for agent in agents
            if (installer.agent_root(agent) / sanitize_name(name)).exists()
        ]
        if unmanaged:
            chosen.extend(unmanaged)
        else:
            unmatched.append(name)
    if unmatched:
        raise UnknownSkill(unmatched, {item.skill for item in installed})
    return chosen


def _untrack_removed(
    manifest: Manifest,
    remaining: list[InstalledSkill],
    removed: set[tuple[str | None, str]],
) -> list[tuple[str, str]]:
    """Drop skills no recorded agent still has, then agents left without any tracked skill."""
    untracked: list[tuple[str, str]] = []
    for source_id, skill in sorted(removed, key=lambda pair: (pair[0] or "", pair[1])):
        if source_id is None:
            continue
        entry = manifest.get(source_id)
        if entry is None or skill not in entry.skills:
            continue
        still_installed = {
            item.agent.name
            for item in remaining
            if item.source_id == source_id and item.skill == skill
        }
        if not still_installed & set(entry.agents):
            manifest.remove_skill_from_entry(source_id, skill)
            untracked.append((source_id, skill))

    for source_id in sorted({source_id for source_id, _ in removed if source_id is not None}):
        entry = manifest.get(source_id)
        if entry is None:
            continue
        for agent in list(entry.agents):
            if not any(
                item.agent.name == agent and item.source_id == source_id and item.skill in entry.skills
                for item in remaining
            ):
                manifest.remove_agent_from_entry(source_id, agent)
                if manifest.get(source_id) is None:
                    break
    return untracked


async def list_installed(
    ctx: CommandContext,
    *,
    global_: bool = False,
    agents: Sequence[str] = (),
) -> ListReport:
    store, scope = ctx.manifest_store(global_)
    manifest = store.load()
    if agents:
        selected, unknown = resolve_agent_names(agents, ctx.agents)
        if unknown:
            raise UnknownAgent(unknown, [agent.name for agent in ctx.agents])
    else:
        selected = list(ctx.agents)
    installed = await asyncio.to_thread(ctx.installer(scope).scan_installed, selected)
    return ListReport(scope=scope, installed=installed, tracked=dict(manifest.entries))


async def check(ctx: CommandContext, *, global_: bool = False) -> CheckReport:
    store, _scope = ctx.manifest_store(global_, auto=True)
    manifest = store.load()
    statuses = await drift.check(manifest, ctx.resolver, max_parallel=ctx.settings.max_parallel_fetches)
    return CheckReport(manifest_path=store.path, statuses=statuses)


async def update(ctx: CommandContext, *, global_: bool = False, yes: bool = False) -> drift.UpdateReport:
    store, _scope = ctx.manifest_store(global_, auto=True)
    manifest = store.load()
    report = await drift.update(
        manifest,
        ctx.resolver,
        ctx.installer,
        ctx.prompter,
        yes=yes,
        max_parallel=ctx.settings.max_parallel_fetches,
        agents=ctx.agents,
    )
    store.save(manifest)
    return report


async def init(ctx: CommandContext, name: str | None = None) -> InitReport:
    """Write a ``SKILL.md`` template into ``<name>/`` or the working directory."""
    directory = ctx.cwd / name if name else ctx.cwd
    path = directory / SKILL_FILENAME
    if path.exists():
        raise InstallConflict(path, "already exists")
    skill_name = name or ctx.cwd.name
    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(SKILL_TEMPLATE.format(name=skill_name), encoding="utf-8")
    return InitReport(path=path)
