"""Find skills (directories holding a ``SKILL.md`` with front matter) in a working copy."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import yaml

from skil.core.logging.logger import get_logger
from skil.errors import NoSkillsFound

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = get_logger(__name__)

SKILL_FILENAME = "SKILL.md"
INSTALL_SIDECAR_FILENAME = ".skil-install.json"
MAX_WALK_DEPTH = 5
MAX_NAME_LENGTH = 255

SKIPPED_DIRECTORIES = frozenset(
    {".git", "node_modules", "target", "dist", "build", ".next", ".turbo", ".cache"}
)

PRIORITY_SKILL_DIRS = (
    "skills",
    "skills/.curated",
    "skills/.experimental",
    "skills/.system",
    ".agent/skills",
    ".agents/skills",
    ".claude/skills",
    ".cline/skills",
    ".codebuddy/skills",
    ".codex/skills",
    ".commandcode/skills",
    ".continue/skills",
    ".cursor/skills",
    ".github/skills",
    ".goose/skills",
    ".junie/skills",
    ".kilocode/skills",
    ".kiro/skills",
    ".mux/skills",
    ".opencode/skills",
    ".openhands/skills",
    ".roo/skills",
    ".trae/skills",
    ".windsurf/skills",
    ".zencoder/skills",
)


@dataclass(frozen=True)
class DiscoveredSkill:
    name: str
    description: str
    path: Path
    relative_path: str
    """POSIX path of the skill directory beneath the source root (``.`` for the root)."""
    source_id: str = ""
    full_depth: bool = False

    @property
    def install_path(self) -> str:
        """Path of the installed skill relative to an agent's skills directory."""
        if not self.full_depth or self.relative_path in {"", "."}:
            return sanitize_name(self.name)
        return "/".join(sanitize_name(part) for part in PurePosixPath(self.relative_path).parts)


def sanitize_name(name: str) -> str:
    """Lowercase ``name`` and collapse anything outside ``[a-z0-9._]`` into single dashes."""
    out: list[str] = []
    prev_dash = False
    for ch in name.lower():
        if (ch.isascii() and ch.isalnum()) or ch in "._":
            out.append(ch)
            prev_dash = False
        elif not prev_dash:
            out.append("-")
            prev_dash = True
    trimmed = "".join(out).strip("-.")
    if not trimmed:
        return "unnamed-skill"
    return trimmed[:MAX_NAME_LENGTH]


def parse_frontmatter(content: str) -> dict[str, Any] | None:
    """Return the YAML mapping between the leading ``---`` fences, if any.

    Raises ``yaml.YAMLError`` when the block is present but not valid YAML.
    """
    lines = content.splitlines()
    if not lines or lines[0].strip() != "---":
        return None
    block: list[str] = []
    for line in lines[1:]:
        if line.strip() == "---":
            break
        block.append(line)
    text = "\n".join(block)
    if not text.strip():
        return None
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        return None
    return data


def _read_skill_metadata(skill_md: Path) -> tuple[str, str] | None:
    try:
        frontmatter = parse_frontmatter(skill_md.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning(
            "Skipping unreadable skill",
            data={"path": str(skill_md), "error": str(exc)},
        )
        return None
    if frontmatter is None:
        return None
    name = frontmatter.get("name")
    description = frontmatter.get("description")
    if name is None or description is None:
        return None
    name_text = str(name).strip()
    description_text = str(description).strip()
    if not name_text or not description_text:
        return None
    return name_text, description_text


def _walk_skill_files(root: Path, max_depth: int) -> Iterator[Path]:
    for current, dirnames, filenames in os.walk(root):
        depth = len(Path(current).relative_to(root).parts)
        dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRECTORIES)
        if depth >= max_depth:
            dirnames[:] = []
        if SKILL_FILENAME in filenames:
            yield Path(current) / SKILL_FILENAME


def discover(
    working_copy: Path,
    full_depth: bool = False,
    *,
    source_id: str = "",
) -> list[DiscoveredSkill]:
    """Enumerate skills under ``working_copy``.

    The root and the well-known skill directories are checked first; only when
    they yield nothing is the tree walked (to a bounded depth). Names are
    unique; the first occurrence wins. Nothing is cached between calls.
    """
    root = working_copy.resolve()
    skills: list[DiscoveredSkill] = []
    seen: set[str] = set()

    def _add(skill_md: Path) -> None:
        metadata = _read_skill_metadata(skill_md)
        if metadata is None:
            return
        name, description = metadata
        if name in seen:
            logger.debug("Duplicate skill name ignored", data={"name": name, "path": str(skill_md)})
            return
        seen.add(name)
        skill_dir = skill_md.parent
        relative = skill_dir.relative_to(root).as_posix()
        skills.append(
            DiscoveredSkill(
                name=name,
                description=description,
                path=skill_dir,
                relative_path=relative or ".",
                source_id=source_id,
                full_depth=full_depth,
            )
        )

    if (root / SKILL_FILENAME).is_file():
        _add(root / SKILL_FILENAME)

    for relative_dir in ("", *PRIORITY_SKILL_DIRS):
        directory = root / relative_dir if relative_dir else root
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if entry.is_dir() and entry.name not in SKIPPED_DIRECTORIES:
                skill_md = entry / SKILL_FILENAME
                if skill_md.is_file():
                    _add(skill_md)

    if not skills:
        for skill_md in _walk_skill_files(root, MAX_WALK_DEPTH):
            _add(skill_md)

    return skills


def require_skills(skills: Sequence[DiscoveredSkill], source: str) -> Sequence[DiscoveredSkill]:
    if not skills:
        raise NoSkillsFound(source)
    return skills


def iter_skill_files(skill_dir: Path) -> Iterator[Path]:
    """Files that make up a skill's content, in a stable order."""
    for current, dirnames, filenames in os.walk(skill_dir, followlinks=True):
        dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRECTORIES)
        for filename in sorted(filenames):
            path = Path(current) / filename
            if filename == INSTALL_SIDECAR_FILENAME or not path.is_file():
                continue
            yield path


def compute_content_checksum(skills: Sequence[DiscoveredSkill]) -> str:
    """Content hash over every discovered skill, for sources without a commit id."""
    digest = hashlib.sha256()
    for skill in sorted(skills, key=lambda item: item.relative_path):
        digest.update(skill.relative_path.encode("utf-8"))
        digest.update(b"\0")
        for path in iter_skill_files(skill.path):
            digest.update(path.relative_to(skill.path).as_posix().encode("utf-8"))
            digest.update(b"\0")
            digest.update(path.read_bytes())
            digest.update(b"\0")
    return f"sha256:{digest.hexdigest()}"
