"""Materialize (skill, agent) pairs on disk and remove them again."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from skil.core.logging.logger import get_logger
from skil.errors import InstallConflict, SkilError
from skil.install.cache import CacheStore
from skil.install.fs import (
    SIDECAR_SCHEMA_VERSION,
    InstallRecord,
    copy_skill_tree,
    prune_empty_parents,
    read_install_record,
    remove_path,
    replace_path,
    sibling_temp_path,
    utc_timestamp,
    write_install_record,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from skil.agents import AgentConfig, Scope
    from skil.config import InstallMode
    from skil.skills.discovery import DiscoveredSkill
    from skil.skills.selection import SkillAgentPair

logger = get_logger(__name__)

OutcomeStatus = Literal["installed", "unchanged", "removed", "skipped", "failed"]

MAX_SCAN_DEPTH = 5


@dataclass(frozen=True)
class InstallOutcome:
    skill: str
    agent: str
    target: Path
    status: OutcomeStatus
    detail: str | None = None
    mode: InstallMode | None = None


@dataclass
class InstallReport:
    succeeded: list[InstallOutcome] = field(default_factory=list)
    skipped: list[InstallOutcome] = field(default_factory=list)
    failed: list[InstallOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def extend(self, other: InstallReport) -> None:
        self.succeeded.extend(other.succeeded)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)


@dataclass(frozen=True)
class InstalledSkill:
    """A skill directory or link found in an agent's skills directory."""

    agent: AgentConfig
    path: Path
    record: InstallRecord | None = None

    @property
    def skill(self) -> str:
        return self.record.skill if self.record is not None else self.path.name

    @property
    def source_id(self) -> str | None:
        return self.record.source_id if self.record is not None else None

    @property
    def is_link(self) -> bool:
        return self.path.is_symlink()


class Installer:
    def __init__(
        self,
        *,
        scope: Scope,
        project_root: Path | None = None,
        agents_dir: str = ".agents",
    ) -> None:
        self.scope = scope
        self.project_root = (project_root or Path.cwd()).resolve()
        scope_root = self.project_root if scope == "project" else Path.home()
        self.cache = CacheStore(scope_root / agents_dir / "cache")

    def agent_root(self, agent: AgentConfig) -> Path:
        return agent.skills_root(self.scope, self.project_root)

    def target_for(self, skill: DiscoveredSkill, agent: AgentConfig) -> Path:
        return self.agent_root(agent) / skill.install_path

    def is_installed(self, skill: DiscoveredSkill, agent: AgentConfig) -> bool:
        return os.path.lexists(self.target_for(skill, agent))

    def is_managed(self, target: Path) -> bool:
        if target.is_symlink():
            return self.cache.contains(target.resolve())
        if target.is_dir():
            record, _ = read_install_record(target)
            return record is not None
        return False

    def install(
        self,
        pairs: Iterable[SkillAgentPair],
        mode: InstallMode,
        *,
        checksum: str,
    ) -> InstallReport:
        """Install every pair; failures are recorded per pair and never abort the rest."""
        report = InstallReport()
        for pair in pairs:
            target = self.target_for(pair.skill, pair.agent)
            try:
                self._ensure_replaceable(target)
                if mode == "symlink":
                    outcome = self._install_link(pair, target, checksum)
                else:
                    outcome = self._install_copy(pair, target, checksum)
            except (SkilError, OSError) as exc:
                logger.warning(
                    "Install failed",
                    data={"skill": pair.skill.name, "agent": pair.agent.name, "error": str(exc)},
                )
                report.failed.append(
                    InstallOutcome(pair.skill.name, pair.agent.name, target, "failed", str(exc), mode)
                )
                continue
            report.succeeded.append(outcome)
        return report

    def remove(self, installed: Sequence[InstalledSkill]) -> InstallReport:
        report = InstallReport()
        for item in installed:
            path = item.path
            if not os.path.lexists(path):
                report.skipped.append(
                    InstallOutcome(item.skill, item.agent.name, path, "skipped", "not installed")
                )
                continue
            try:
                if not self.is_managed(path):
                    raise InstallConflict(path, "not installed by skil")
                entry = self.cache.entry_for_link(path)
                remove_path(path)
                if entry is not None:
                    self.cache.remove_ref(entry, path)
                prune_empty_parents(path.parent, stop=self.agent_root(item.agent))
            except (SkilError, OSError) as exc:
                report.failed.append(
                    InstallOutcome(item.skill, item.agent.name, path, "failed", str(exc))
                )
                continue
            logger.info("Removed skill", data={"skill": item.skill, "target": str(path)})
            report.succeeded.append(InstallOutcome(item.skill, item.agent.name, path, "removed"))
        return report

    def scan_installed(self, agents: Iterable[AgentConfig]) -> list[InstalledSkill]:
        """Managed installs found by reading sidecars under each agent's skills directory."""
        found: list[InstalledSkill] = []
        for agent in agents:
            root = self.agent_root(agent)
            if not root.is_dir():
                continue
            for current, dirnames, _ in os.walk(root):
                depth = len(Path(current).relative_to(root).parts)
                descend: list[str] = []
                for name in sorted(dirnames):
                    candidate = Path(current) / name
                    record, _error = read_install_record(candidate)
                    if record is not None:
                        found.append(InstalledSkill(agent=agent, path=candidate, record=record))
                    elif not candidate.is_symlink() and depth + 1 < MAX_SCAN_DEPTH:
                        descend.append(name)
                dirnames[:] = descend
        return found

    def _ensure_replaceable(self, target: Path) -> None:
        if os.path.lexists(target) and not self.is_managed(target):
            raise InstallConflict(target, "exists and is not managed by skil")

    def _install_link(self, pair: SkillAgentPair, target: Path, checksum: str) -> InstallOutcome:
        entry, cached = self.cache.materialize(pair.skill, checksum)
        if target.is_symlink() and Path(os.readlink(target)) == cached:
            self.cache.add_ref(entry, target)
            return InstallOutcome(pair.skill.name, pair.agent.name, target, "unchanged", mode="symlink")

        previous_entry = self.cache.entry_for_link(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        staged = sibling_temp_path(target, "link")
        try:
            os.symlink(cached, staged, target_is_directory=True)
        except (OSError, NotImplementedError) as exc:
            logger.warning(
                "Symlinks unavailable, falling back to copy",
                data={"target": str(target), "error": str(exc)},
            )
            self.cache.discard_if_unreferenced(entry)
            return self._install_copy(pair, target, checksum)

        try:
            replace_path(staged, target)
        except BaseException:
            if os.path.lexists(staged):
                staged.unlink()
            raise
        self.cache.add_ref(entry, target)
        if previous_entry is not None and previous_entry != entry:
            self.cache.remove_ref(previous_entry, target)
        logger.info("Linked skill", data={"skill": pair.skill.name, "target": str(target)})
        return InstallOutcome(pair.skill.name, pair.agent.name, target, "installed", mode="symlink")

    def _install_copy(self, pair: SkillAgentPair, target: Path, checksum: str) -> InstallOutcome:
        target.parent.mkdir(parents=True, exist_ok=True)
        staged = sibling_temp_path(target, "staging")
        previous_entry = self.cache.entry_for_link(target)
        try:
            copy_skill_tree(pair.skill.path, staged)
            write_install_record(
                staged,
                InstallRecord(
                    schema_version=SIDECAR_SCHEMA_VERSION,
                    source_id=pair.skill.source_id,
                    skill=pair.skill.name,
                    checksum=checksum,
                    install_path=pair.skill.install_path,
                    mode="copy",
                    installed_at=utc_timestamp(),
                ),
            )
            replace_path(staged, target)
        except BaseException:
            shutil.rmtree(staged, ignore_errors=True)
            raise
        if previous_entry is not None:
            self.cache.remove_ref(previous_entry, target)
        logger.info("Copied skill", data={"skill": pair.skill.name, "target": str(target)})
        return InstallOutcome(pair.skill.name, pair.agent.name, target, "installed", mode="copy")
