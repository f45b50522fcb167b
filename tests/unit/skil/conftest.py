from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

import skil.config as config_module
from skil.agents import agent_configs
from skil.commands.context import CommandContext
from skil.config import Settings
from skil.sources.git import GitCommandError

SkillFactory = Callable[..., Path]


def write_skill(root: Path, relative: str, name: str, description: str = "Does things") -> Path:
    skill_dir = root / relative if relative not in {"", "."} else root
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {description}\n---\n\n# {name}\n",
        encoding="utf-8",
    )
    return skill_dir


class FakeGit:
    """In-process stand-in for ``GitClient`` backed by plain directories."""

    def __init__(self) -> None:
        self.repos: dict[str, tuple[Path, str]] = {}
        self.unreachable: set[str] = set()
        self.fetches: list[tuple[str, str | None]] = []
        self.ls_remote_calls: list[str] = []

    def publish(self, url: str, content: Path, commit: str) -> None:
        self.repos[url] = (content, commit)

    def shallow_fetch(self, url: str, dest: Path, ref: str | None = None) -> str:
        self.fetches.append((url, ref))
        self._guard(url)
        content, commit = self.repos[url]
        shutil.copytree(content, dest, dirs_exist_ok=True)
        return commit

    def ls_remote(self, url: str, ref: str | None = None) -> str | None:
        self.ls_remote_calls.append(url)
        self._guard(url)
        return self.repos[url][1]

    def _guard(self, url: str) -> None:
        if url in self.unreachable:
            raise GitCommandError(["git", "fetch", url], "fatal: unable to access: Could not resolve host")
        if url not in self.repos:
            raise GitCommandError(["git", "fetch", url], "remote: Repository not found.")


class ScriptedPrompter:
    def __init__(
        self,
        *,
        interactive: bool = True,
        selections: Sequence[list[str] | None] = (),
        confirms: Sequence[bool] = (),
    ) -> None:
        self._interactive = interactive
        self.selections = list(selections)
        self.confirms = list(confirms)
        self.select_calls: list[tuple[str, list[str], list[str]]] = []
        self.confirm_calls: list[str] = []

    @property
    def interactive(self) -> bool:
        return self._interactive

    def select_many(self, title, options, default=()):
        self.select_calls.append((title, [value for value, _ in options], list(default)))
        return self.selections.pop(0) if self.selections else None

    def confirm(self, message: str) -> bool:
        self.confirm_calls.append(message)
        return self.confirms.pop(0) if self.confirms else False


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    for name in ("CODEX_HOME", "CLAUDE_CONFIG_DIR"):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("SKIL_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "_settings", None)
    return home


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def upstream(tmp_path: Path) -> Path:
    root = tmp_path / "upstream"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def make_skill() -> SkillFactory:
    return write_skill


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def scripted_prompter() -> type[ScriptedPrompter]:
    return ScriptedPrompter


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def make_context(project: Path, fake_git: FakeGit, settings: Settings) -> Callable[..., CommandContext]:
    def _make(prompter=None, **overrides) -> CommandContext:
        return CommandContext.create(
            settings=overrides.pop("settings", settings),
            cwd=overrides.pop("cwd", project),
            prompter=prompter,
            git=overrides.pop("git", fake_git),
            agents=overrides.pop("agents", agent_configs()),
        )

    return _make
