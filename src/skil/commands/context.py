"""Everything a command needs, built once per invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from skil.agents import agent_configs
from skil.config import get_settings
from skil.install.installer import Installer
from skil.manifest import ManifestStore, auto_manifest_location, manifest_location
from skil.skills.selection import NonInteractivePrompter
from skil.sources.resolver import SourceResolver

if TYPE_CHECKING:
    from skil.agents import AgentConfig, Scope
    from skil.config import Settings
    from skil.skills.selection import Prompter
    from skil.sources.git import GitClient


@dataclass
class CommandContext:
    settings: Settings
    cwd: Path
    prompter: Prompter
    resolver: SourceResolver
    agents: list[AgentConfig] = field(default_factory=agent_configs)

    @classmethod
    def create(
        cls,
        *,
        settings: Settings | None = None,
        cwd: Path | None = None,
        prompter: Prompter | None = None,
        git: GitClient | None = None,
        agents: list[AgentConfig] | None = None,
    ) -> CommandContext:
        resolved_settings = settings or get_settings()
        resolved_cwd = (cwd or Path.cwd()).resolve()
        return cls(
            settings=resolved_settings,
            cwd=resolved_cwd,
            prompter=prompter or NonInteractivePrompter(),
            resolver=SourceResolver(resolved_settings, git=git, cwd=resolved_cwd),
            agents=agents if agents is not None else agent_configs(),
        )

    def installer(self, scope: Scope) -> Installer:
        return Installer(scope=scope, project_root=self.cwd, agents_dir=self.settings.agents_dir)

    def manifest_store(self, global_: bool, *, auto: bool = False) -> tuple[ManifestStore, Scope]:
        """The manifest for ``--global``, the project, or (with ``auto``) whichever exists."""
        if global_:
            return ManifestStore(manifest_location("global", cwd=self.cwd)), "global"
        if auto:
            path, scope = auto_manifest_location(cwd=self.cwd)
            return ManifestStore(path), scope
        return ManifestStore(manifest_location("project", cwd=self.cwd)), "project"
