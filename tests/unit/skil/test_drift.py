from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from skil import drift
from skil.agents import agent_configs
from skil.install.installer import Installer
from skil.manifest import Manifest, ManifestEntry
from skil.skills.selection import NonInteractivePrompter
from skil.sources.resolver import SourceResolver

if TYPE_CHECKING:
    from pathlib import Path


URL = "https://github.com/acme/pack.git"
OTHER = "https://github.com/acme/other.git"


def _entry(source_id: str = URL, checksum: str = "abc123", skills=("alpha",)) -> ManifestEntry:
    return ManifestEntry(
        source_id=source_id,
        source_type="github",
        url=source_id,
        checksum=checksum,
        agents=["codex"],
        skills=list(skills),
    )


def _installer_for(project: Path):
    def _factory(scope):
        return Installer(scope=scope, project_root=project)

    return _factory


@pytest.mark.asyncio
async def test_check_reports_stale_without_mutation(settings, fake_git, upstream: Path, make_skill) -> None:
    make_skill(upstream, "skills/alpha", "alpha")
    fake_git.publish(URL, upstream, "def456")
    manifest = Manifest()
    manifest.upsert_entry(_entry())
    before = manifest.model_copy(deep=True)

    statuses = await drift.check(manifest, SourceResolver(settings, git=fake_git))

    assert [(status.state, status.current, status.available) for status in statuses] == [
        ("stale", "abc123", "def456")
    ]
    assert manifest == before
    assert fake_git.fetches == []


@pytest.mark.asyncio
async def test_check_marks_unreachable_as_error(settings, fake_git, upstream: Path) -> None:
    fake_git.publish(URL, upstream, "abc123")
    fake_git.publish(OTHER, upstream, "abc123")
    fake_git.unreachable.add(OTHER)
    manifest = Manifest()
    manifest.upsert_entry(_entry())
    manifest.upsert_entry(_entry(OTHER))

    statuses = {status.source_id: status for status in await drift.check(manifest, SourceResolver(settings, git=fake_git))}

    assert statuses[URL].state == "up_to_date"
    assert statuses[OTHER].state == "error"
    assert "unreachable" in (statuses[OTHER].error or "").lower()


@pytest.mark.asyncio
async def test_update_refetches_only_stale_and_rewrites_checksum(
    settings, fake_git, project: Path, tmp_path: Path, make_skill, scripted_prompter
) -> None:
    fresh = tmp_path / "fresh"
    current = tmp_path / "current"
    make_skill(fresh, "skills/alpha", "alpha", "new text")
    make_skill(current, "skills/alpha", "alpha")
    fake_git.publish(URL, fresh, "def456")
    fake_git.publish(OTHER, current, "abc123")
    manifest = Manifest()
    manifest.upsert_entry(_entry())
    manifest.upsert_entry(_entry(OTHER))

    report = await drift.update(
        manifest,
        SourceResolver(settings, git=fake_git),
        _installer_for(project),
        scripted_prompter(),
        agents=agent_configs(),
    )

    assert report.ok
    assert [update.source_id for update in report.updates] == [URL]
    assert manifest.entries[URL].checksum == "def456"
    assert manifest.entries[OTHER].checksum == "abc123"
    assert [url for url, _ in fake_git.fetches] == [URL]
    skill_md = project / ".codex" / "skills" / "alpha" / "SKILL.md"
    assert "new text" in skill_md.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_update_with_unreachable_source_leaves_entry(
    settings, fake_git, project: Path, tmp_path: Path, make_skill, scripted_prompter
) -> None:
    fresh = tmp_path / "fresh"
    make_skill(fresh, "skills/alpha", "alpha")
    fake_git.publish(URL, fresh, "def456")
    fake_git.publish(OTHER, fresh, "def456")
    fake_git.unreachable.add(OTHER)
    manifest = Manifest()
    manifest.upsert_entry(_entry())
    manifest.upsert_entry(_entry(OTHER))

    report = await drift.update(
        manifest, SourceResolver(settings, git=fake_git), _installer_for(project), scripted_prompter()
    )

    assert not report.ok
    assert [status.source_id for status in report.errors] == [OTHER]
    assert manifest.entries[URL].checksum == "def456"
    assert manifest.entries[OTHER].checksum == "abc123"


@pytest.mark.asyncio
async def test_vanished_skill_declined_keeps_entry_stale(
    settings, fake_git, project: Path, upstream: Path, make_skill, scripted_prompter
) -> None:
    make_skill(upstream, "skills/alpha", "alpha")
    fake_git.publish(URL, upstream, "def456")
    manifest = Manifest()
    manifest.upsert_entry(_entry(skills=("alpha", "gone")))
    prompter = scripted_prompter(confirms=[False])

    report = await drift.update(
        manifest, SourceResolver(settings, git=fake_git), _installer_for(project), prompter
    )

    update = report.updates[0]
    assert update.outcome == "skipped"
    assert update.state == "stale"
    assert update.vanished == ["gone"]
    assert manifest.entries[URL].checksum == "abc123"
    assert manifest.entries[URL].skills == ["alpha", "gone"]
    assert len(prompter.confirm_calls) == 1


@pytest.mark.asyncio
async def test_vanished_skill_confirmed_is_untracked(
    settings, fake_git, project: Path, upstream: Path, make_skill, scripted_prompter
) -> None:
    make_skill(upstream, "skills/alpha", "alpha")
    fake_git.publish(URL, upstream, "def456")
    manifest = Manifest()
    manifest.upsert_entry(_entry(skills=("alpha", "gone")))

    report = await drift.update(
        manifest,
        SourceResolver(settings, git=fake_git),
        _installer_for(project),
        scripted_prompter(),
        yes=True,
    )

    assert report.updates[0].outcome == "updated"
    assert manifest.entries[URL].skills == ["alpha"]
    assert manifest.entries[URL].checksum == "def456"


@pytest.mark.asyncio
async def test_vanished_skill_without_terminal_fails_only_that_entry(
    settings, fake_git, project: Path, tmp_path: Path, make_skill
) -> None:
    fresh = tmp_path / "fresh"
    make_skill(fresh, "skills/alpha", "alpha")
    fake_git.publish(URL, fresh, "def456")
    fake_git.publish(OTHER, fresh, "def456")
    manifest = Manifest()
    manifest.upsert_entry(_entry(skills=("alpha", "gone")))
    manifest.upsert_entry(_entry(OTHER))

    report = await drift.update(
        manifest, SourceResolver(settings, git=fake_git), _installer_for(project), NonInteractivePrompter()
    )

    outcomes = {update.source_id: update for update in report.updates}
    assert outcomes[URL].outcome == "failed"
    assert "--yes" in (outcomes[URL].detail or "")
    assert outcomes[OTHER].outcome == "updated"
    assert manifest.entries[URL].checksum == "abc123"
    assert manifest.entries[OTHER].checksum == "def456"
