"""Turn discovered skills plus requested names into concrete (skill, agent) pairs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from skil.agents import detect_default_agents, resolve_agent_names
from skil.errors import SelectionRequired, UnknownAgent, UnknownSkill

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from skil.agents import AgentConfig
    from skil.skills.discovery import DiscoveredSkill


class Prompter(Protocol):
    """Interactive choices the engine needs; injected so the engine stays UI-free."""

    @property
    def interactive(self) -> bool: ...

    def select_many(
        self,
        title: str,
        options: Sequence[tuple[str, str]],
        default: Sequence[str] = (),
    ) -> list[str] | None:
        """Return the chosen option values, or ``None`` when cancelled."""
        ...

    def confirm(self, message: str) -> bool: ...


class NonInteractivePrompter:
    """Used when stdin is not a terminal: never chooses anything and refuses to confirm."""

    @property
    def interactive(self) -> bool:
        return False

    def select_many(
        self,
        title: str,
        options: Sequence[tuple[str, str]],
        default: Sequence[str] = (),
    ) -> list[str] | None:
        del title, options, default
        return None

    def confirm(self, message: str) -> bool:
        raise SelectionRequired(
            "confirmation", f"{message} Pass --yes to confirm without a terminal."
        )


@dataclass(frozen=True)
class SelectionFlags:
    all: bool = False
    list_only: bool = False
    yes: bool = False


@dataclass(frozen=True)
class SkillAgentPair:
    skill: DiscoveredSkill
    agent: AgentConfig


@dataclass
class Selection:
    pairs: list[SkillAgentPair] = field(default_factory=list)
    listed: list[DiscoveredSkill] = field(default_factory=list)
    declined: list[SkillAgentPair] = field(default_factory=list)


def select(
    discovered: Sequence[DiscoveredSkill],
    requested_skills: Sequence[str],
    requested_agents: Sequence[str],
    flags: SelectionFlags,
    prompter: Prompter,
    agents: Sequence[AgentConfig],
    is_installed: Callable[[DiscoveredSkill, AgentConfig], bool],
    *,
    default_agents: Sequence[str] = (),
) -> Selection:
    """Resolve the pairs to install.

    ``list_only`` short-circuits everything else. Unless ``flags.yes`` is set,
    pairs whose target already exists are confirmed one by one; declined pairs
    are returned separately so callers can report them as skipped.
    """
    if flags.list_only:
        return Selection(listed=list(discovered))

    skills = _select_skills(discovered, requested_skills, flags, prompter)
    targets = _select_agents(requested_agents, flags, prompter, agents, default_agents)

    selection = Selection()
    for skill in skills:
        for agent in targets:
            pair = SkillAgentPair(skill=skill, agent=agent)
            if not flags.yes and is_installed(skill, agent):
                if not prompter.confirm(
                    f"{skill.name} is already installed for {agent.display_name}. Overwrite?"
                ):
                    selection.declined.append(pair)
                    continue
            selection.pairs.append(pair)
    return selection


def _select_skills(
    discovered: Sequence[DiscoveredSkill],
    requested: Sequence[str],
    flags: SelectionFlags,
    prompter: Prompter,
) -> list[DiscoveredSkill]:
    if flags.all or "*" in requested:
        return list(discovered)

    if requested:
        by_name = {skill.name: skill for skill in discovered}
        unknown = [name for name in requested if name not in by_name]
        if unknown:
            raise UnknownSkill(unknown, by_name)
        chosen: list[DiscoveredSkill] = []
        for name in requested:
            if by_name[name] not in chosen:
                chosen.append(by_name[name])
        return chosen

    if not prompter.interactive:
        raise SelectionRequired("skills")
    if len(discovered) == 1:
        return list(discovered)
    picked = prompter.select_many(
        "Select skills to install",
        [(skill.name, f"{skill.name} - {skill.description}") for skill in discovered],
    )
    if not picked:
        raise SelectionRequired("skills")
    return [skill for skill in discovered if skill.name in picked]


def _select_agents(
    requested: Sequence[str],
    flags: SelectionFlags,
    prompter: Prompter,
    agents: Sequence[AgentConfig],
    default_agents: Sequence[str],
) -> list[AgentConfig]:
    if requested:
        selected, unknown = resolve_agent_names(requested, agents)
        if unknown:
            raise UnknownAgent(unknown, [agent.name for agent in agents])
        return selected

    if flags.all:
        return list(agents)

    if prompter.interactive:
        detected = [agent.name for agent in detect_default_agents(agents)]
        picked = prompter.select_many(
            "Select agents to install to",
            [(agent.name, agent.display_name) for agent in agents],
            default=detected,
        )
        if not picked:
            raise SelectionRequired("agents")
        return [agent for agent in agents if agent.name in picked]

    if default_agents:
        selected, unknown = resolve_agent_names(default_agents, agents)
        if unknown:
            raise UnknownAgent(unknown, [agent.name for agent in agents])
        return selected
    return detect_default_agents(agents)
