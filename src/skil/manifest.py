"""The manifest (lockfile) recording which skills are tracked from which source.

Project scope keeps it in ``./.skil.toml``; global scope in
``$XDG_CONFIG_HOME/skil/config.toml``::

    version = 1

    [source."https://github.com/acme/pack.git"]
    type = "github"
    url = "https://github.com/acme/pack.git"
    checksum = "0123abcd..."
    scope = "project"
    mode = "symlink"
    full-depth = false
    agents = ["claude-code"]
    skills = ["alpha"]
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from skil.agents import Scope
from skil.config import CONFIG_DIR_NAME, InstallMode, config_home
from skil.core.logging.logger import get_logger
from skil.errors import ManifestCorrupt
from skil.sources.models import SourceKind, SourceRef

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

MANIFEST_VERSION = 1
PROJECT_MANIFEST_FILENAME = ".skil.toml"
GLOBAL_MANIFEST_FILENAME = "config.toml"


class ManifestEntry(BaseModel):
    source_id: str = Field(exclude=True)
    source_type: SourceKind = Field(alias="type")
    url: str
    branch: str | None = None
    subpath: str | None = None
    checksum: str
    scope: Scope = "project"
    mode: InstallMode = "symlink"
    full_depth: bool = Field(default=False, alias="full-depth")
    agents: list[str] = Field(default_factory=list)
    skills: list[str] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("agents", "skills")
    @classmethod
    def _sorted_unique(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    @classmethod
    def from_ref(
        cls,
        ref: SourceRef,
        *,
        checksum: str,
        skills: Iterable[str],
        agents: Iterable[str],
        scope: Scope,
        mode: InstallMode,
        full_depth: bool,
    ) -> ManifestEntry:
        return cls(
            source_id=ref.source_id,
            source_type=ref.kind,
            url=ref.location,
            branch=ref.branch,
            subpath=ref.subpath,
            checksum=checksum,
            scope=scope,
            mode=mode,
            full_depth=full_depth,
            agents=list(agents),
            skills=list(skills),
        )

    def to_ref(self) -> SourceRef:
        return SourceRef(
            kind=self.source_type,
            source_id=self.source_id,
            location=self.url,
            branch=self.branch,
            subpath=self.subpath,
        )

    def to_table(self) -> dict[str, Any]:
        table = self.model_dump(by_alias=True, exclude_none=True)
        table["agents"] = sorted(set(self.agents))
        table["skills"] = sorted(set(self.skills))
        return dict(sorted(table.items()))


class Manifest(BaseModel):
    version: int = MANIFEST_VERSION
    entries: dict[str, ManifestEntry] = Field(default_factory=dict)

    def get(self, source_id: str) -> ManifestEntry | None:
        return self.entries.get(source_id)

    def upsert_entry(self, entry: ManifestEntry) -> ManifestEntry:
        """Insert ``entry`` or fold it into the existing one for the same source.

        Skills and agents accumulate; everything else takes the new value.
        """
        existing = self.entries.get(entry.source_id)
        if existing is not None:
            entry = entry.model_copy(
                update={
                    "skills": sorted(set(existing.skills) | set(entry.skills)),
                    "agents": sorted(set(existing.agents) | set(entry.agents)),
                }
            )
        self.entries[entry.source_id] = entry
        return entry

    def remove_skill_from_entry(self, source_id: str, skill: str) -> bool:
        """Untrack ``skill``; returns True when the entry was deleted as a result."""
        entry = self.entries.get(source_id)
        if entry is None:
            return False
        entry.skills = [name for name in entry.skills if name != skill]
        if not entry.skills:
            del self.entries[source_id]
            return True
        return False

    def remove_agent_from_entry(self, source_id: str, agent: str) -> bool:
        """Stop targeting ``agent``; an entry left without agents is deleted."""
        entry = self.entries.get(source_id)
        if entry is None:
            return False
        entry.agents = [name for name in entry.agents if name != agent]
        if not entry.agents:
            del self.entries[source_id]
            return True
        return False

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {"version": self.version}
        if self.entries:
            document["source"] = {
                source_id: self.entries[source_id].to_table() for source_id in sorted(self.entries)
            }
        return document


def manifest_location(scope: Scope, *, cwd: Path | None = None) -> Path:
    if scope == "global":
        return config_home() / CONFIG_DIR_NAME / GLOBAL_MANIFEST_FILENAME
    return (cwd or Path.cwd()) / PROJECT_MANIFEST_FILENAME


def auto_manifest_location(*, cwd: Path | None = None) -> tuple[Path, Scope]:
    """The project manifest when one exists, otherwise the global one."""
    project = manifest_location("project", cwd=cwd)
    if project.is_file():
        return project, "project"
    return manifest_location("global", cwd=cwd), "global"


def parse_manifest(text: str, path: Path) -> Manifest:
    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestCorrupt(path, f"invalid TOML: {exc}") from exc

    version = document.get("version", MANIFEST_VERSION)
    if not isinstance(version, int) or version > MANIFEST_VERSION:
        raise ManifestCorrupt(path, f"unsupported version: {version!r}")
    unknown = set(document) - {"version", "source"}
    if unknown:
        raise ManifestCorrupt(path, f"unknown top-level keys: {', '.join(sorted(unknown))}")

    sources = document.get("source", {})
    if not isinstance(sources, dict):
        raise ManifestCorrupt(path, "'source' must be a table")

    entries: dict[str, ManifestEntry] = {}
    for source_id, table in sources.items():
        if not isinstance(table, dict):
            raise ManifestCorrupt(path, f"source '{source_id}' must be a table")
        try:
            entries[source_id] = ManifestEntry.model_validate({**table, "source_id": source_id})
        except ValidationError as exc:
            raise ManifestCorrupt(path, f"source '{source_id}': {exc}") from exc
    return Manifest(version=version, entries=entries)


def dump_manifest(manifest: Manifest) -> str:
    return tomli_w.dumps(manifest.to_document())


class ManifestStore:
    """Loads a manifest once per command and writes it back at most once."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._loaded_document: dict[str, Any] | None = None

    def load(self) -> Manifest:
        if not self.path.is_file():
            self._loaded_document = None
            return Manifest()
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ManifestCorrupt(self.path, str(exc)) from exc
        manifest = parse_manifest(text, self.path)
        self._loaded_document = manifest.to_document()
        return manifest

    def is_dirty(self, manifest: Manifest) -> bool:
        document = manifest.to_document()
        if self._loaded_document is None:
            return bool(manifest.entries)
        return document != self._loaded_document

    def save(self, manifest: Manifest) -> bool:
        """Write ``manifest`` if it differs from what was loaded; returns True if written."""
        if not self.is_dirty(manifest):
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.parent / f".{self.path.name}.tmp-{uuid4().hex}"
        try:
            tmp.write_text(dump_manifest(manifest), encoding="utf-8")
            os.replace(tmp, self.path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        self._loaded_document = manifest.to_document()
        logger.debug("Saved manifest", data={"path": str(self.path), "entries": len(manifest.entries)})
        return True
