from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from skil.agents import agent_configs, detect_default_agents, find_agent, resolve_agent_names

if TYPE_CHECKING:
    from pathlib import Path


def test_aliases_resolve_to_canonical_names() -> None:
    selected, unknown = resolve_agent_names(["claude", "copilot", "claude-code", "vim"])

    assert [agent.name for agent in selected] == ["claude-code", "github-copilot"]
    assert unknown == ["vim"]


def test_star_selects_every_agent() -> None:
    selected, unknown = resolve_agent_names(["*"])

    assert len(selected) == len(agent_configs())
    assert unknown == []


def test_scope_roots(isolated_home: Path, tmp_path: Path) -> None:
    codex = find_agent("codex")
    assert codex is not None

    assert codex.skills_root("project", tmp_path) == tmp_path / ".codex" / "skills"
    assert codex.skills_root("global") == isolated_home / ".codex" / "skills"


def test_environment_overrides_global_roots(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex-home"))

    codex = find_agent("codex")

    assert codex is not None
    assert codex.global_skills_dir == tmp_path / "codex-home" / "skills"


def test_detection_falls_back_to_codex() -> None:
    assert [agent.name for agent in detect_default_agents()] == ["codex"]


def test_detection_finds_existing_homes(isolated_home: Path) -> None:
    (isolated_home / ".claude").mkdir()
    (isolated_home / ".config" / "opencode").mkdir(parents=True)

    assert [agent.name for agent in detect_default_agents()] == ["claude-code", "opencode"]
