"""Known agents and where each keeps its skills."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

Scope = Literal["project", "global"]


@dataclass(frozen=True)
class AgentConfig:
    name: str
    display_name: str
    skills_dir: str
    """Project-relative skills directory."""
    global_skills_dir: Path
    aliases: tuple[str, ...] = field(default=())

    def matches(self, requested: str) -> bool:
        return requested == self.name or requested in self.aliases

    def skills_root(self, scope: Scope, project_root: Path | None = None) -> Path:
        if scope == "global":
            return self.global_skills_dir
        return (project_root or Path.cwd()) / self.skills_dir


def _env_path(name: str, fallback: Path) -> Path:
    value = os.environ.get(name)
    if value:
        return Path(value).expanduser()
    return fallback


def agent_configs() -> list[AgentConfig]:
    """Return every supported agent with paths resolved from the current environment."""
    home = Path.home()
    config_home = _env_path("XDG_CONFIG_HOME", home / ".config")
    codex_home = _env_path("CODEX_HOME", home / ".codex")
    claude_home = _env_path("CLAUDE_CONFIG_DIR", home / ".claude")

    return [
        AgentConfig("codex", "Codex", ".codex/skills", codex_home / "skills"),
        AgentConfig(
            "claude-code",
            "Claude Code",
            ".claude/skills",
            claude_home / "skills",
            aliases=("claude",),
        ),
        AgentConfig("opencode", "OpenCode", ".opencode/skills", config_home / "opencode" / "skills"),
        AgentConfig("cursor", "Cursor", ".cursor/skills", home / ".cursor" / "skills"),
        AgentConfig("continue", "Continue", ".continue/skills", home / ".continue" / "skills"),
        AgentConfig(
            "github-copilot",
            "GitHub Copilot",
            ".github/skills",
            home / ".copilot" / "skills",
            aliases=("copilot",),
        ),
        AgentConfig("goose", "Goose", ".goose/skills", config_home / "goose" / "skills"),
        AgentConfig("junie", "Junie", ".junie/skills", home / ".junie" / "skills"),
        AgentConfig("windsurf", "Windsurf", ".windsurf/skills", home / ".windsurf" / "skills"),
    ]


def find_agent(name: str, agents: Sequence[AgentConfig] | None = None) -> AgentConfig | None:
    for agent in agents if agents is not None else agent_configs():
        if agent.matches(name):
            return agent
    return None


def resolve_agent_names(
    requested: Iterable[str], agents: Sequence[AgentConfig] | None = None
) -> tuple[list[AgentConfig], list[str]]:
    """Map requested names onto agents, preserving order.

    Returns the matched agents and the names that matched nothing. ``*``
    selects every agent.
    """
    available = list(agents) if agents is not None else agent_configs()
    selected: list[AgentConfig] = []
    unknown: list[str] = []
    for name in requested:
        if name == "*":
            for agent in available:
                if agent not in selected:
                    selected.append(agent)
            continue
        agent = find_agent(name, available)
        if agent is None:
            unknown.append(name)
        elif agent not in selected:
            selected.append(agent)
    return selected, unknown


def detect_default_agents(agents: Sequence[AgentConfig] | None = None) -> list[AgentConfig]:
    """Agents whose home directories exist, falling back to codex."""
    available = list(agents) if agents is not None else agent_configs()
    home = Path.home()
    candidates = {
        "codex": _env_path("CODEX_HOME", home / ".codex"),
        "claude-code": _env_path("CLAUDE_CONFIG_DIR", home / ".claude"),
        "opencode": _env_path("XDG_CONFIG_HOME", home / ".config") / "opencode",
    }
    detected = [
        agent
        for agent in available
        if agent.name in candidates and candidates[agent.name].exists()
    ]
    if not detected:
        fallback = find_agent("codex", available)
        if fallback is not None:
            detected.append(fallback)
    return detected
