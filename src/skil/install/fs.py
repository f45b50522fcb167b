"""Filesystem primitives for installs: sidecar metadata and atomic swaps."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from skil.config import InstallMode
from skil.skills.discovery import INSTALL_SIDECAR_FILENAME, SKIPPED_DIRECTORIES

SIDECAR_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class InstallRecord:
    schema_version: int
    source_id: str
    skill: str
    checksum: str
    install_path: str
    mode: InstallMode
    installed_at: str


def utc_timestamp() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def get_sidecar_path(skill_dir: Path) -> Path:
    return skill_dir / INSTALL_SIDECAR_FILENAME


def read_install_record(skill_dir: Path) -> tuple[InstallRecord | None, str | None]:
    """Return ``(record, None)``, ``(None, None)`` when absent, or ``(None, error)``."""
    sidecar_path = get_sidecar_path(skill_dir)
    if not sidecar_path.is_file():
        return None, None
    try:
        payload = json.loads(sidecar_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return None, f"invalid json: {exc}"
    if not isinstance(payload, dict):
        return None, "metadata root must be an object"
    try:
        return _parse_install_record(payload), None
    except ValueError as exc:
        return None, str(exc)


def write_install_record(skill_dir: Path, record: InstallRecord) -> None:
    get_sidecar_path(skill_dir).write_text(
        json.dumps(asdict(record), indent=2, ensure_ascii=False, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def _parse_install_record(payload: dict[str, Any]) -> InstallRecord:
    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int) or schema_version > SIDECAR_SCHEMA_VERSION:
        raise ValueError(f"unsupported schema_version: {schema_version!r}")
    values: dict[str, str] = {}
    for key in ("source_id", "skill", "checksum", "install_path", "mode", "installed_at"):
        value = payload.get(key)
        if not isinstance(value, str) or not value:
            raise ValueError(f"missing or invalid field: {key}")
        values[key] = value
    if values["mode"] not in {"symlink", "copy"}:
        raise ValueError(f"invalid mode: {values['mode']}")
    return InstallRecord(schema_version=schema_version, **values)  # type: ignore[arg-type]


def ignore_for_copy(directory: str, names: list[str]) -> set[str]:
    del directory
    return {
        name for name in names if name in SKIPPED_DIRECTORIES or name == INSTALL_SIDECAR_FILENAME
    }


def copy_skill_tree(source_dir: Path, dest: Path) -> None:
    shutil.copytree(source_dir, dest, ignore=ignore_for_copy, symlinks=True)


def sibling_temp_path(target: Path, label: str) -> Path:
    return target.parent / f".{target.name}.{label}-{uuid4().hex}"


def remove_path(path: Path) -> None:
    """Delete a symlink, file or directory tree without following links."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def replace_path(staged: Path, target: Path) -> None:
    """Move ``staged`` over ``target``.

    Links and files are swapped with a single ``os.replace``. When either side
    is a real directory the old target is first renamed to a backup, restored
    if the swap fails, and deleted once it succeeds.
    """
    if not os.path.lexists(target):
        os.replace(staged, target)
        return

    target_is_dir = target.is_dir() and not target.is_symlink()
    staged_is_dir = staged.is_dir() and not staged.is_symlink()
    if not target_is_dir and not staged_is_dir:
        os.replace(staged, target)
        return

    backup = sibling_temp_path(target, "backup")
    os.replace(target, backup)
    try:
        os.replace(staged, target)
    except Exception:
        os.replace(backup, target)
        raise
    remove_path(backup)


def prune_empty_parents(directory: Path, *, stop: Path) -> None:
    """Remove empty directories from ``directory`` upwards, never removing ``stop``."""
    current = directory
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
