from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from skil.errors import ManifestCorrupt
from skil.manifest import (
    Manifest,
    ManifestEntry,
    ManifestStore,
    auto_manifest_location,
    dump_manifest,
    manifest_location,
)

if TYPE_CHECKING:
    from pathlib import Path


HAND_WRITTEN = """version = 1

# tracked by hand
[source."https://github.com/acme/pack.git"]
type   = "github"
url    = "https://github.com/acme/pack.git"
checksum = "abc123"
scope = "project"
mode = "symlink"
full-depth = false
agents = [ "codex", "claude-code" ]
skills = ["beta", "alpha"]
"""


def _entry(source_id: str = "https://github.com/acme/pack.git", **overrides) -> ManifestEntry:
    values = {
        "source_id": source_id,
        "source_type": "github",
        "url": source_id,
        "checksum": "abc123",
        "agents": ["claude-code"],
        "skills": ["alpha"],
    }
    values.update(overrides)
    return ManifestEntry(**values)


def test_load_then_save_leaves_hand_written_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / ".skil.toml"
    path.write_text(HAND_WRITTEN, encoding="utf-8")
    store = ManifestStore(path)

    manifest = store.load()
    written = store.save(manifest)

    assert written is False
    assert path.read_text(encoding="utf-8") == HAND_WRITTEN
    entry = manifest.get("https://github.com/acme/pack.git")
    assert entry is not None
    assert entry.skills == ["alpha", "beta"]
    assert entry.agents == ["claude-code", "codex"]


def test_serialization_is_deterministic() -> None:
    first = Manifest()
    first.upsert_entry(_entry("https://github.com/b/b.git"))
    first.upsert_entry(_entry("https://github.com/a/a.git", skills=["z", "a", "z"]))
    second = Manifest()
    second.upsert_entry(_entry("https://github.com/a/a.git", skills=["a", "z"]))
    second.upsert_entry(_entry("https://github.com/b/b.git"))

    text = dump_manifest(first)

    assert text == dump_manifest(second)
    assert text.index("a/a.git") < text.index("b/b.git")
    assert text.startswith("version = 1\n")


def test_saved_manifest_round_trips(tmp_path: Path) -> None:
    store = ManifestStore(tmp_path / ".skil.toml")
    manifest = store.load()
    manifest.upsert_entry(_entry(branch="main", subpath="skills", full_depth=True))

    assert store.save(manifest) is True
    first = store.path.read_text(encoding="utf-8")
    reloaded = ManifestStore(store.path).load()

    assert reloaded == manifest
    assert 'full-depth = true' in first
    assert 'type = "github"' in first
    assert "source_id" not in first


def test_upsert_accumulates_skills_and_agents() -> None:
    manifest = Manifest()
    manifest.upsert_entry(_entry(skills=["alpha"], agents=["codex"]))

    merged = manifest.upsert_entry(_entry(skills=["beta"], agents=["claude-code"], checksum="def456"))

    assert merged.skills == ["alpha", "beta"]
    assert merged.agents == ["claude-code", "codex"]
    assert merged.checksum == "def456"


def test_removing_last_skill_deletes_entry() -> None:
    manifest = Manifest()
    manifest.upsert_entry(_entry(skills=["alpha", "beta"]))

    assert manifest.remove_skill_from_entry("https://github.com/acme/pack.git", "alpha") is False
    assert manifest.remove_skill_from_entry("https://github.com/acme/pack.git", "beta") is True
    assert manifest.entries == {}


def test_removing_last_agent_deletes_entry() -> None:
    manifest = Manifest()
    manifest.upsert_entry(_entry(agents=["codex"]))

    assert manifest.remove_agent_from_entry("https://github.com/acme/pack.git", "codex") is True
    assert manifest.get("https://github.com/acme/pack.git") is None


def test_empty_skills_are_rejected() -> None:
    with pytest.raises(ValueError):
        _entry(skills=[])


@pytest.mark.parametrize(
    "content",
    [
        "version = 1\n[source\n",
        'version = 1\n[source."x"]\ntype = "github"\n',
        'version = 1\n[source."x"]\ntype = "svn"\nurl = "x"\nchecksum = "c"\nskills = ["a"]\n',
        "version = 99\n",
        'version = 1\nsource = "nope"\n',
    ],
)
def test_corrupt_manifest_is_reported_and_kept(tmp_path: Path, content: str) -> None:
    path = tmp_path / ".skil.toml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ManifestCorrupt, match=str(path)):
        ManifestStore(path).load()

    assert path.read_text(encoding="utf-8") == content


def test_missing_manifest_is_empty_and_not_created(tmp_path: Path) -> None:
    store = ManifestStore(tmp_path / ".skil.toml")

    manifest = store.load()

    assert manifest.entries == {}
    assert store.save(manifest) is False
    assert not store.path.exists()


def test_locations(tmp_path: Path, isolated_home: Path) -> None:
    assert manifest_location("project", cwd=tmp_path) == tmp_path / ".skil.toml"
    assert manifest_location("global", cwd=tmp_path) == isolated_home / ".config" / "skil" / "config.toml"

    assert auto_manifest_location(cwd=tmp_path)[1] == "global"
    (tmp_path / ".skil.toml").write_text("version = 1\n", encoding="utf-8")
    assert auto_manifest_location(cwd=tmp_path) == (tmp_path / ".skil.toml", "project")


def test_entry_to_ref_restores_source() -> None:
    ref = _entry(branch="dev", subpath="skills").to_ref()

    assert ref.source_id == "https://github.com/acme/pack.git"
    assert ref.branch == "dev"
    assert ref.is_git
