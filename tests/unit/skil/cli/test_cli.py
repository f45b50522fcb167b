from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from skil.cli.main import app
from skil.manifest import ManifestStore

if TYPE_CHECKING:
    from pathlib import Path


runner = CliRunner()


@pytest.fixture
def local_pack(upstream: Path, make_skill) -> Path:
    make_skill(upstream, "skills/alpha", "alpha")
    make_skill(upstream, "skills/beta", "beta")
    return upstream


@pytest.fixture(autouse=True)
def in_project(project: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(project)
    return project


def test_add_local_source_then_list(local_pack: Path, project: Path) -> None:
    result = runner.invoke(app, ["add", str(local_pack), "--skill", "alpha", "--agent", "codex"])

    assert result.exit_code == 0, result.output
    assert "Installed 1, skipped 0, failed 0" in result.output
    assert (project / ".codex" / "skills" / "alpha").is_symlink()
    entry = ManifestStore(project / ".skil.toml").load().get(str(local_pack))
    assert entry is not None
    assert entry.source_type == "local"
    assert entry.checksum.startswith("sha256:")

    listed = runner.invoke(app, ["list", "--agent", "codex"])
    assert listed.exit_code == 0, listed.output
    assert "alpha" in listed.output


def test_add_list_flag_prints_skills(local_pack: Path, project: Path) -> None:
    result = runner.invoke(app, ["add", str(local_pack), "--list"])

    assert result.exit_code == 0, result.output
    assert "alpha" in result.output and "beta" in result.output
    assert not (project / ".skil.toml").exists()


def test_engine_errors_exit_with_status_one(local_pack: Path) -> None:
    result = runner.invoke(app, ["add", str(local_pack), "--skill", "nope", "--agent", "codex"])

    assert result.exit_code == 1
    assert "Unknown skill" in result.output


def test_missing_selection_without_terminal_fails(local_pack: Path) -> None:
    result = runner.invoke(app, ["add", str(local_pack)])

    assert result.exit_code == 1
    assert "No skills selected" in result.output


def test_remove_with_yes(local_pack: Path, project: Path) -> None:
    runner.invoke(app, ["add", str(local_pack), "--skill", "alpha", "--agent", "codex"])

    result = runner.invoke(app, ["remove", "alpha", "--yes"])

    assert result.exit_code == 0, result.output
    assert not (project / ".codex" / "skills" / "alpha").exists()


def test_check_with_nothing_tracked(project: Path) -> None:
    result = runner.invoke(app, ["check"])

    assert result.exit_code == 0, result.output
    assert "No sources tracked" in result.output


def test_init_creates_template(project: Path) -> None:
    result = runner.invoke(app, ["init", "demo"])

    assert result.exit_code == 0, result.output
    assert (project / "demo" / "SKILL.md").is_file()

    again = runner.invoke(app, ["init", "demo"])
    assert again.exit_code == 1
