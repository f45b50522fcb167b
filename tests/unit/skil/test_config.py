from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

import skil.config as config_module
from skil.config import Settings, get_settings, load_settings

if TYPE_CHECKING:
    from pathlib import Path


def test_defaults() -> None:
    settings = Settings()

    assert settings.install_mode == "symlink"
    assert settings.agents_dir == ".agents"
    assert settings.logger.level == "warning"


def test_project_yaml_overrides_user_yaml(tmp_path: Path, isolated_home: Path) -> None:
    user_dir = isolated_home / ".config" / "skil"
    user_dir.mkdir(parents=True)
    (user_dir / "skil.config.yaml").write_text(
        "default_agents: [codex]\nlogger:\n  level: info\n  show_path: true\n", encoding="utf-8"
    )
    (tmp_path / "skil.config.yaml").write_text("logger:\n  level: debug\n", encoding="utf-8")

    settings = load_settings(cwd=tmp_path)

    assert settings.default_agents == ["codex"]
    assert settings.logger.level == "debug"
    assert settings.logger.show_path is True


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "skil.config.yaml").write_text("install_mode: symlink\n", encoding="utf-8")
    monkeypatch.setenv("SKIL_INSTALL_MODE", "copy")
    monkeypatch.setenv("SKIL_LOGGER__LEVEL", "error")

    settings = load_settings(cwd=tmp_path)

    assert settings.install_mode == "copy"
    assert settings.logger.level == "error"


def test_git_host_is_normalized() -> None:
    assert Settings(git_host="https://git.example.com/").git_host == "https://git.example.com"


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        load_settings(path)


def test_explicit_config_replaces_cached_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "_settings", Settings(agents_dir=".cached"))
    assert get_settings().agents_dir == ".cached"

    path = tmp_path / "custom.yaml"
    path.write_text("agents_dir: .skills\n", encoding="utf-8")

    assert get_settings(path).agents_dir == ".skills"
    assert get_settings().agents_dir == ".skills"
