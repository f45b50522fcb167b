"""Thin wrapper around the ``git`` executable."""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING

from skil.core.logging.logger import get_logger

if TYPE_CHECKING:
    from pathlib import Path

logger = get_logger(__name__)

_NOT_FOUND_MARKERS = (
    "repository not found",
    "does not exist",
    "couldn't find remote ref",
    "could not find remote ref",
    "not found",
    "no such file or directory",
    "does not appear to be a git repository",
)


class GitCommandError(RuntimeError):
    def __init__(
        self,
        args: list[str],
        stderr: str,
        returncode: int | None = None,
        *,
        executable_missing: bool = False,
    ) -> None:
        self.command = args
        self.stderr = stderr
        self.returncode = returncode
        self.executable_missing = executable_missing
        super().__init__(f"Git command failed: {' '.join(args)}\n{stderr}".rstrip())

    @property
    def is_not_found(self) -> bool:
        if self.executable_missing:
            return False
        lowered = self.stderr.lower()
        return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


def run_git(args: list[str], *, cwd: Path | None = None) -> str:
    command = ["git", *args]
    logger.debug("Running git", data={"args": args, "cwd": str(cwd) if cwd else None})
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise GitCommandError(
            command, f"git executable not found: {exc}", executable_missing=True
        ) from exc
    if result.returncode != 0:
        stderr = result.stderr.strip() or result.stdout.strip()
        raise GitCommandError(command, stderr, result.returncode)
    return result.stdout


def parse_ls_remote_commit(output: str) -> str | None:
    """Extract a commit hash from ``git ls-remote`` output.

    For annotated tags, prefer the peeled commit (``refs/tags/<tag>^{}``) when present.
    """
    fallback: str | None = None
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split(maxsplit=1)
        commit = parts[0].strip()
        if not commit:
            continue
        ref = parts[1].strip() if len(parts) > 1 else ""
        if ref.endswith("^{}"):
            return commit
        if fallback is None:
            fallback = commit
    return fallback


def resolve_git_commit(repo_root: Path, revision: str | None = None) -> str | None:
    rev = revision or "HEAD"
    try:
        output = run_git(["-C", str(repo_root), "rev-parse", f"{rev}^{{commit}}"])
    except GitCommandError:
        return None
    values = output.strip().splitlines()
    if not values:
        return None
    commit = values[0].strip()
    return commit or None


class GitClient:
    """VCS capability used by the resolver: shallow fetch and cheap ref lookup."""

    def shallow_fetch(self, url: str, dest: Path, ref: str | None = None) -> str:
        """Fetch only ``ref`` (a branch, tag, or commit; default ``HEAD``) into ``dest``.

        Returns the checked-out commit id.
        """
        dest.mkdir(parents=True, exist_ok=True)
        run_git(["init", "--quiet", str(dest)])
        run_git(["-C", str(dest), "remote", "add", "origin", url])
        run_git(["-C", str(dest), "fetch", "--quiet", "--depth", "1", "origin", ref or "HEAD"])
        run_git(["-C", str(dest), "checkout", "--quiet", "--detach", "FETCH_HEAD"])
        commit = resolve_git_commit(dest, "HEAD")
        if commit is None:
            raise GitCommandError(["git", "rev-parse", "HEAD"], "unable to resolve fetched commit")
        return commit

    def ls_remote(self, url: str, ref: str | None = None) -> str | None:
        output = run_git(["ls-remote", url, ref or "HEAD"])
        return parse_ls_remote_commit(output)
