"""Compare tracked checksums against upstream and bring stale entries up to date."""

from __future__ import annotations

import asyncio
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from skil.agents import agent_configs, find_agent
from skil.core.logging.logger import get_logger
from skil.errors import SkilError
from skil.skills.discovery import discover
from skil.skills.selection import SkillAgentPair

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from skil.agents import AgentConfig, Scope
    from skil.install.installer import Installer, InstallReport
    from skil.manifest import Manifest, ManifestEntry
    from skil.skills.selection import Prompter
    from skil.sources.models import ResolvedSource
    from skil.sources.resolver import SourceResolver

logger = get_logger(__name__)

DriftState = Literal["up_to_date", "stale", "error"]
UpdateOutcome = Literal["updated", "skipped", "failed"]


@dataclass(frozen=True)
class DriftStatus:
    source_id: str
    state: DriftState
    current: str
    available: str | None = None
    error: str | None = None


@dataclass
class EntryUpdate:
    source_id: str
    outcome: UpdateOutcome
    state: DriftState
    previous: str
    current: str | None = None
    detail: str | None = None
    vanished: list[str] = field(default_factory=list)
    install: InstallReport | None = None


@dataclass
class UpdateReport:
    statuses: list[DriftStatus] = field(default_factory=list)
    updates: list[EntryUpdate] = field(default_factory=list)

    @property
    def errors(self) -> list[DriftStatus]:
        return [status for status in self.statuses if status.state == "error"]

    @property
    def ok(self) -> bool:
        return not self.errors and all(update.outcome != "failed" for update in self.updates)


async def check(
    manifest: Manifest,
    resolver: SourceResolver,
    *,
    max_parallel: int = 4,
) -> list[DriftStatus]:
    """Query every entry's upstream checksum concurrently. Nothing is modified."""
    semaphore = asyncio.Semaphore(max(1, max_parallel))

    async def _check_entry(entry: ManifestEntry) -> DriftStatus:
        async with semaphore:
            try:
                remote = await asyncio.to_thread(resolver.remote_checksum, entry.to_ref())
            except SkilError as exc:
                logger.warning("Drift check failed", data={"source": entry.source_id, "error": str(exc)})
                return DriftStatus(entry.source_id, "error", entry.checksum, error=str(exc))
        state: DriftState = "up_to_date" if remote == entry.checksum else "stale"
        return DriftStatus(entry.source_id, state, entry.checksum, available=remote)

    entries = [manifest.entries[source_id] for source_id in sorted(manifest.entries)]
    return list(await asyncio.gather(*(_check_entry(entry) for entry in entries)))


async def update(
    manifest: Manifest,
    resolver: SourceResolver,
    installer_for: Callable[[Scope], Installer],
    prompter: Prompter,
    *,
    yes: bool = False,
    max_parallel: int = 4,
    agents: Sequence[AgentConfig] | None = None,
) -> UpdateReport:
    """Refetch stale entries and reinstall their recorded skills for their recorded agents.

    Fetches run in parallel; installs, prompts and manifest edits happen on the
    calling task, one entry at a time. Entries whose source cannot be reached
    are reported and left untouched.
    """
    available_agents = list(agents) if agents is not None else agent_configs()
    report = UpdateReport(statuses=await check(manifest, resolver, max_parallel=max_parallel))
    stale = [status for status in report.statuses if status.state == "stale"]
    if not stale:
        return report

    semaphore = asyncio.Semaphore(max(1, max_parallel))

    async def _fetch(entry: ManifestEntry) -> ResolvedSource:
        async with semaphore:
            return await asyncio.to_thread(resolver.fetch, entry.to_ref())

    entries = [manifest.entries[status.source_id] for status in stale]
    with ExitStack() as stack:
        results = await asyncio.gather(*(_fetch(entry) for entry in entries), return_exceptions=True)
        for result in results:
            if not isinstance(result, BaseException):
                stack.callback(result.cleanup)

        for entry, result in zip(entries, results, strict=True):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                report.updates.append(_failed(entry, result))
                continue
            try:
                outcome = _apply_update(
                    manifest,
                    entry,
                    result,
                    installer_for(entry.scope),
                    prompter,
                    yes=yes,
                    agents=available_agents,
                )
            except Exception as exc:  # noqa: BLE001
                outcome = _failed(entry, exc)
            report.updates.append(outcome)
    return report


def _failed(entry: ManifestEntry, exc: Exception) -> EntryUpdate:
    if not isinstance(exc, SkilError):
        logger.error("Update failed", data={"source": entry.source_id, "error": repr(exc)})
    return EntryUpdate(entry.source_id, "failed", "stale", entry.checksum, detail=str(exc))


def _apply_update(
    manifest: Manifest,
    entry: ManifestEntry,
    resolved: ResolvedSource,
    installer: Installer,
    prompter: Prompter,
    *,
    yes: bool,
    agents: Sequence[AgentConfig],
) -> EntryUpdate:
    previous = entry.checksum
    discovered = {
        skill.name: skill
        for skill in discover(resolved.working_copy, entry.full_depth, source_id=entry.source_id)
    }
    vanished = [name for name in entry.skills if name not in discovered]

    targets: list[AgentConfig] = []
    unknown_agents: list[str] = []
    for name in entry.agents:
        agent = find_agent(name, agents)
        if agent is None:
            unknown_agents.append(name)
        else:
            targets.append(agent)

    removal: InstallReport | None = None
    if vanished:
        message = (
            f"{entry.source_id} no longer provides: {', '.join(vanished)}. "
            "Stop tracking and remove them?"
        )
        if not (yes or prompter.confirm(message)):
            return EntryUpdate(
                entry.source_id,
                "skipped",
                "stale",
                previous,
                detail="skills vanished upstream; removal declined",
                vanished=vanished,
            )
        installed = [
            item
            for item in installer.scan_installed(targets)
            if item.source_id == entry.source_id and item.skill in vanished
        ]
        removal = installer.remove(installed)
        for name in vanished:
            if manifest.remove_skill_from_entry(entry.source_id, name):
                return EntryUpdate(
                    entry.source_id,
                    "updated" if removal.ok else "failed",
                    "up_to_date",
                    previous,
                    detail="every tracked skill vanished upstream; entry removed",
                    vanished=vanished,
                    install=removal,
                )

    pairs = [
        SkillAgentPair(skill=discovered[name], agent=agent)
        for name in entry.skills
        if name in discovered
        for agent in targets
    ]
    install = installer.install(pairs, entry.mode, checksum=resolved.checksum)
    if removal is not None:
        install.extend(removal)
    if unknown_agents:
        detail = f"unknown agent(s) in manifest: {', '.join(unknown_agents)}"
    else:
        detail = None
    if not install.ok:
        return EntryUpdate(
            entry.source_id, "failed", "stale", previous, detail=detail, vanished=vanished, install=install
        )
    entry.checksum = resolved.checksum
    logger.info(
        "Updated source",
        data={"source": entry.source_id, "from": previous, "to": resolved.checksum},
    )
    return EntryUpdate(
        entry.source_id,
        "updated",
        "up_to_date",
        previous,
        current=resolved.checksum,
        detail=detail,
        vanished=vanished,
        install=install,
    )
