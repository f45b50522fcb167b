"""Shared, reference-counted store of skill content used by symlink installs.

Layout::

    <cache root>/<source slug>/<checksum>/<install path>/   skill content + sidecar
    <cache root>/<source slug>/<checksum>/refs.json         sorted list of link paths

An entry is deleted as soon as its reference list becomes empty.
"""

from __future__ import annotations

import hashlib
import json
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from skil.core.logging.logger import get_logger
from skil.install.fs import (
    SIDECAR_SCHEMA_VERSION,
    InstallRecord,
    copy_skill_tree,
    get_sidecar_path,
    sibling_temp_path,
    utc_timestamp,
    write_install_record,
)
from skil.skills.discovery import sanitize_name

if TYPE_CHECKING:
    from skil.skills.discovery import DiscoveredSkill

logger = get_logger(__name__)

REFS_FILENAME = "refs.json"


def source_slug(source_id: str) -> str:
    digest = hashlib.sha256(source_id.encode("utf-8")).hexdigest()[:12]
    readable = sanitize_name(source_id.split("://", 1)[-1])[:80].rstrip("-.")
    return f"{readable}-{digest}"


def checksum_dirname(checksum: str) -> str:
    return checksum.replace(":", "-").replace("/", "-")


class CacheStore:
    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def entry_dir(self, source_id: str, checksum: str) -> Path:
        return self.root / source_slug(source_id) / checksum_dirname(checksum)

    def contains(self, path: Path) -> bool:
        try:
            path.relative_to(self.root)
        except ValueError:
            return False
        return True

    def entry_for_link(self, link: Path) -> Path | None:
        """Cache entry a symlink points into, or ``None`` if it points elsewhere."""
        if not link.is_symlink():
            return None
        try:
            parts = link.resolve().relative_to(self.root).parts
        except ValueError:
            return None
        if len(parts) < 3:
            return None
        return self.root / parts[0] / parts[1]

    def materialize(self, skill: DiscoveredSkill, checksum: str) -> tuple[Path, Path]:
        """Ensure ``skill`` is present in the entry for ``checksum``.

        Returns ``(entry_dir, skill_dir)``. Content is staged and renamed into
        place so a partially copied skill is never visible.
        """
        entry = self.entry_dir(skill.source_id, checksum)
        skill_dir = entry / skill.install_path
        if get_sidecar_path(skill_dir).is_file():
            return entry, skill_dir

        skill_dir.parent.mkdir(parents=True, exist_ok=True)
        staged = sibling_temp_path(skill_dir, "staging")
        try:
            copy_skill_tree(skill.path, staged)
            write_install_record(
                staged,
                InstallRecord(
                    schema_version=SIDECAR_SCHEMA_VERSION,
                    source_id=skill.source_id,
                    skill=skill.name,
                    checksum=checksum,
                    install_path=skill.install_path,
                    mode="symlink",
                    installed_at=utc_timestamp(),
                ),
            )
            if skill_dir.exists():
                shutil.rmtree(skill_dir)
            os.replace(staged, skill_dir)
        except BaseException:
            shutil.rmtree(staged, ignore_errors=True)
            raise
        logger.debug("Cached skill", data={"skill": skill.name, "path": str(skill_dir)})
        return entry, skill_dir

    def read_refs(self, entry: Path) -> list[str]:
        refs_path = entry / REFS_FILENAME
        if not refs_path.is_file():
            return []
        try:
            payload = json.loads(refs_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache refs", data={"path": str(refs_path), "error": str(exc)})
            return []
        if not isinstance(payload, list):
            return []
        return sorted({str(item) for item in payload})

    def add_ref(self, entry: Path, link: Path) -> None:
        refs = set(self.read_refs(entry))
        refs.add(os.path.abspath(link))
        self._write_refs(entry, sorted(refs))

    def remove_ref(self, entry: Path, link: Path) -> bool:
        """Drop ``link`` from the entry's references; returns True if the entry was deleted."""
        refs = set(self.read_refs(entry))
        refs.discard(os.path.abspath(link))
        if refs:
            self._write_refs(entry, sorted(refs))
            return False
        self.discard(entry)
        return True

    def discard_if_unreferenced(self, entry: Path) -> None:
        if not self.read_refs(entry):
            self.discard(entry)

    def discard(self, entry: Path) -> None:
        shutil.rmtree(entry, ignore_errors=True)
        parent = entry.parent
        if parent != self.root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
        logger.debug("Deleted cache entry", data={"entry": str(entry)})

    def _write_refs(self, entry: Path, refs: list[str]) -> None:
        entry.mkdir(parents=True, exist_ok=True)
        refs_path = entry / REFS_FILENAME
        tmp = sibling_temp_path(refs_path, "tmp")
        tmp.write_text(json.dumps(refs, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp, refs_path)
