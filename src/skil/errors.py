"""Error taxonomy raised by the skil engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


class SkilError(Exception):
    """Base class for every error the engine surfaces to the CLI."""


class SourceUnreachable(SkilError):
    def __init__(self, source: str, cause: str) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"Source unreachable: {source}: {cause}")


class SourceNotFound(SkilError):
    def __init__(self, source: str, cause: str | None = None) -> None:
        self.source = source
        self.cause = cause
        message = f"Source not found: {source}"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)


class AmbiguousSource(SkilError):
    def __init__(self, source: str, hint: str) -> None:
        self.source = source
        self.hint = hint
        super().__init__(f"Ambiguous source '{source}': {hint}")


class NoSkillsFound(SkilError):
    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"No skills found in {source}")


class UnknownSkill(SkilError):
    def __init__(self, names: Iterable[str], available: Iterable[str] = ()) -> None:
        self.names = sorted(names)
        self.available = sorted(available)
        message = f"Unknown skill(s): {', '.join(self.names)}"
        if self.available:
            message = f"{message} (available: {', '.join(self.available)})"
        super().__init__(message)


class UnknownAgent(SkilError):
    def __init__(self, names: Iterable[str], available: Iterable[str] = ()) -> None:
        self.names = sorted(names)
        self.available = sorted(available)
        message = f"Unknown agent(s): {', '.join(self.names)}"
        if self.available:
            message = f"{message} (available: {', '.join(self.available)})"
        super().__init__(message)


class SelectionRequired(SkilError):
    def __init__(self, what: str = "skills", message: str | None = None) -> None:
        self.what = what
        super().__init__(
            message or f"No {what} selected; pass explicit names, --all, or run interactively"
        )


class InstallConflict(SkilError):
    def __init__(self, target: Path, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Refusing to touch {target}: {reason}")


class ManifestCorrupt(SkilError):
    def __init__(self, path: Path, cause: str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Manifest {path} is corrupt: {cause}")
