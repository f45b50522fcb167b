"""Fetch a ``SourceRef`` into a scratch working copy and compute its checksum."""

from __future__ import annotations

import os
import shutil
import tarfile
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import httpx

from skil.core.logging.logger import get_logger
from skil.errors import AmbiguousSource, SourceNotFound, SourceUnreachable
from skil.skills.discovery import SKIPPED_DIRECTORIES, compute_content_checksum, discover
from skil.sources.git import GitClient, GitCommandError
from skil.sources.models import ResolvedSource, SourceRef
from skil.sources.parsing import parse_source

if TYPE_CHECKING:
    from collections.abc import Iterator

    from skil.config import Settings

logger = get_logger(__name__)

SCRATCH_PREFIX = "skil-fetch-"


def _ignore_skipped(directory: str, names: list[str]) -> set[str]:
    ignored = {name for name in names if name in SKIPPED_DIRECTORIES}
    for name in names:
        candidate = os.path.join(directory, name)
        if os.path.islink(candidate) and not os.path.exists(candidate):
            ignored.add(name)
    return ignored


def _safe_member_path(root: Path, member_name: str) -> Path:
    posix = PurePosixPath(member_name.replace("\\", "/"))
    if posix.is_absolute() or ".." in posix.parts:
        raise ValueError(f"archive member escapes extraction root: {member_name}")
    return root / Path(*posix.parts) if posix.parts else root


def extract_archive(archive: Path, dest: Path) -> None:
    """Extract a zip or tar archive, rejecting members that would escape ``dest``."""
    dest.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as bundle:
            for info in bundle.infolist():
                _safe_member_path(dest, info.filename)
            bundle.extractall(dest)
        return
    try:
        with tarfile.open(archive) as bundle:
            members = bundle.getmembers()
            for member in members:
                _safe_member_path(dest, member.name)
                if member.issym() or member.islnk():
                    raise ValueError(f"archive links are not supported: {member.name}")
            bundle.extractall(dest, members=members, filter="data")
    except tarfile.TarError as exc:
        raise ValueError(f"unsupported archive format: {archive.name}") from exc


def _single_root(directory: Path) -> Path:
    """Archives commonly wrap their content in one top-level directory."""
    entries = [entry for entry in directory.iterdir() if not entry.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir() and not (directory / "SKILL.md").exists():
        return entries[0]
    return directory


class SourceResolver:
    def __init__(self, settings: Settings, *, git: GitClient | None = None, cwd: Path | None = None) -> None:
        self.settings = settings
        self.git = git or GitClient()
        self.cwd = cwd or Path.cwd()

    def parse(self, source: str) -> SourceRef:
        return parse_source(source, git_host=self.settings.git_host, cwd=self.cwd)

    @contextmanager
    def resolve(self, source: str | SourceRef, *, pinned: str | None = None) -> Iterator[ResolvedSource]:
        """Fetch ``source``; the scratch copy is removed when the block exits."""
        ref = self.parse(source) if isinstance(source, str) else source
        resolved = self.fetch(ref, pinned=pinned)
        try:
            yield resolved
        finally:
            resolved.cleanup()

    def fetch(self, ref: SourceRef, *, pinned: str | None = None) -> ResolvedSource:
        """Fetch ``ref`` into a new scratch directory owned by the returned value.

        ``pinned`` is a previously recorded checksum; for git sources the exact
        commit is fetched instead of the branch tip.
        """
        scratch = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX))
        try:
            root, checksum = self._fetch_into(ref, scratch, pinned=pinned)
            working_copy = self._narrow_to_subpath(ref, root)
            if checksum is None:
                checksum = compute_content_checksum(discover(working_copy, source_id=ref.source_id))
        except OSError as exc:
            shutil.rmtree(scratch, ignore_errors=True)
            raise SourceNotFound(ref.source_id, f"cannot read source: {exc}") from exc
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise
        logger.debug(
            "Fetched source",
            data={"source": ref.source_id, "checksum": checksum, "scratch": str(scratch)},
        )
        return ResolvedSource(ref=ref, working_copy=working_copy, checksum=checksum, scratch_dir=scratch)

    def remote_checksum(self, ref: SourceRef) -> str:
        """Cheap lookup of the checksum the source would resolve to right now."""
        if ref.is_git:
            try:
                commit = self.git.ls_remote(ref.location, ref.branch)
            except GitCommandError as exc:
                raise self._git_error(ref, exc) from exc
            if commit is None:
                target = ref.branch or "HEAD"
                raise SourceNotFound(ref.source_id, f"ref not found: {target}")
            return commit
        if ref.kind == "local":
            path = Path(ref.location)
            if not path.exists():
                raise SourceNotFound(ref.source_id, "local path does not exist")
            if path.is_dir():
                working_copy = self._narrow_to_subpath(ref, path)
                try:
                    return compute_content_checksum(discover(working_copy, source_id=ref.source_id))
                except OSError as exc:
                    raise SourceNotFound(ref.source_id, f"cannot read source: {exc}") from exc
        with self.resolve(ref) as resolved:
            return resolved.checksum

    def _fetch_into(self, ref: SourceRef, scratch: Path, *, pinned: str | None) -> tuple[Path, str | None]:
        if ref.is_git:
            target = scratch / "repo"
            try:
                commit = self.git.shallow_fetch(ref.location, target, pinned or ref.branch)
            except GitCommandError as exc:
                raise self._git_error(ref, exc) from exc
            return target, commit

        if ref.kind == "remote-archive":
            archive = scratch / PurePosixPath(httpx.URL(ref.location).path).name
            self._download(ref, archive)
            return self._extract(ref, archive, scratch / "content"), None

        path = Path(ref.location)
        if not path.exists():
            raise SourceNotFound(ref.source_id, "local path does not exist")
        if ref.kind == "archive":
            return self._extract(ref, path, scratch / "content"), None

        target = scratch / "content"
        if path.is_file():
            if path.name != "SKILL.md":
                raise SourceNotFound(ref.source_id, "file sources must be SKILL.md or an archive")
            target.mkdir()
            shutil.copy2(path, target / "SKILL.md")
        else:
            # Links are followed; dangling links are dropped.
            shutil.copytree(path, target, ignore=_ignore_skipped)
        return target, None

    def _extract(self, ref: SourceRef, archive: Path, dest: Path) -> Path:
        try:
            extract_archive(archive, dest)
        except (OSError, ValueError) as exc:
            raise SourceNotFound(ref.source_id, f"cannot extract archive: {exc}") from exc
        return _single_root(dest)

    def _download(self, ref: SourceRef, dest: Path) -> None:
        try:
            with httpx.Client(timeout=self.settings.http_timeout, follow_redirects=True) as client:
                with client.stream("GET", ref.location) as response:
                    if response.status_code == 404:
                        raise SourceNotFound(ref.source_id, "HTTP 404")
                    response.raise_for_status()
                    with open(dest, "wb") as handle:
                        for chunk in response.iter_bytes():
                            handle.write(chunk)
        except httpx.HTTPError as exc:
            raise SourceUnreachable(ref.source_id, str(exc)) from exc

    @staticmethod
    def _narrow_to_subpath(ref: SourceRef, root: Path) -> Path:
        if not ref.subpath:
            return root
        candidate = (root / ref.subpath).resolve()
        try:
            candidate.relative_to(root.resolve())
        except ValueError as exc:
            raise AmbiguousSource(ref.source_id, "subpath escapes the source root") from exc
        if not candidate.exists():
            raise SourceNotFound(ref.source_id, f"subpath not found: {ref.subpath}")
        return candidate

    @staticmethod
    def _git_error(ref: SourceRef, exc: GitCommandError) -> SourceNotFound | SourceUnreachable:
        if exc.is_not_found:
            return SourceNotFound(ref.source_id, exc.stderr)
        return SourceUnreachable(ref.source_id, exc.stderr or str(exc))
