"""Source reference and resolved-source value types."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

SourceKind = Literal["github", "gitlab", "codeberg", "git", "local", "archive", "remote-archive"]

GIT_KINDS: frozenset[str] = frozenset({"github", "gitlab", "codeberg", "git"})


@dataclass(frozen=True)
class SourceRef:
    """A parsed source string. Everything downstream works from ``source_id``."""

    kind: SourceKind
    source_id: str
    location: str
    """Git URL, absolute filesystem path, or archive URL."""
    branch: str | None = None
    subpath: str | None = None

    @property
    def is_git(self) -> bool:
        return self.kind in GIT_KINDS


@dataclass
class ResolvedSource:
    ref: SourceRef
    working_copy: Path
    """Directory discovery starts from (the fetched root, narrowed by ``subpath``)."""
    checksum: str
    scratch_dir: Path | None = None

    @property
    def source_id(self) -> str:
        return self.ref.source_id

    def cleanup(self) -> None:
        if self.scratch_dir is not None:
            shutil.rmtree(self.scratch_dir, ignore_errors=True)
            self.scratch_dir = None

    def __enter__(self) -> ResolvedSource:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()
