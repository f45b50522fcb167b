"""Turn user-supplied source strings into canonical ``SourceRef`` values."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from skil.errors import AmbiguousSource, SourceNotFound
from skil.sources.models import SourceKind, SourceRef

ARCHIVE_SUFFIXES = (".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2")

_HOSTED_KINDS: dict[str, SourceKind] = {
    "github.com": "github",
    "gitlab.com": "gitlab",
    "codeberg.org": "codeberg",
}


def is_archive_name(name: str) -> bool:
    return name.lower().endswith(ARCHIVE_SUFFIXES)


def _is_explicit_local_path(source: str) -> bool:
    if source in {".", ".."} or source.startswith(("./", "../", "~")):
        return True
    if Path(source).is_absolute() or source.startswith("/"):
        return True
    return len(source) > 2 and source[1] == ":" and source[2] in {"/", "\\"}


def _looks_like_url(source: str) -> bool:
    return "://" in source or source.startswith("git@")


def _with_subpath(source_id: str, subpath: str | None) -> str:
    return f"{source_id}#{subpath}" if subpath else source_id


def _clean_subpath(parts: list[str]) -> str | None:
    cleaned = [part for part in parts if part and part != "."]
    if any(part == ".." for part in cleaned):
        raise AmbiguousSource("/".join(parts), "subpath may not contain '..'")
    if not cleaned:
        return None
    return str(PurePosixPath(*cleaned))


def _hosted_ref(
    host: str, owner: str, repo: str, *, location: str | None, branch: str | None, subpath: str | None
) -> SourceRef:
    repo = repo.removesuffix(".git")
    canonical = f"https://{host}/{owner}/{repo}.git"
    return SourceRef(
        kind=_HOSTED_KINDS.get(host, "git"),
        source_id=_with_subpath(canonical, subpath),
        location=location or canonical,
        branch=branch,
        subpath=subpath,
    )


def parse_hosted_git_url(source: str) -> SourceRef | None:
    """Parse GitHub, GitLab and Codeberg URLs, including tree/blob and SSH forms."""
    source = source.strip().rstrip("/")

    if source.startswith("git@"):
        host, _, rest = source[len("git@") :].partition(":")
        parts = rest.removesuffix(".git").split("/")
        if host in _HOSTED_KINDS and len(parts) >= 2 and all(parts[:2]):
            return _hosted_ref(host, parts[0], parts[1], location=source, branch=None, subpath=None)
        return None

    parsed = urlparse(source)
    if parsed.scheme not in {"http", "https"}:
        return None
    host = parsed.netloc.lower().removeprefix("www.")
    if host not in _HOSTED_KINDS:
        return None
    parts = parsed.path.strip("/").split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None

    owner, repo = parts[0], parts[1]
    branch: str | None = None
    subpath: str | None = None
    if host == "github.com" and len(parts) >= 4 and parts[2] in {"tree", "blob"}:
        branch = parts[3]
        subpath = _clean_subpath(parts[4:])
    elif host == "gitlab.com" and len(parts) >= 5 and parts[2] == "-" and parts[3] == "tree":
        branch = parts[4]
        subpath = _clean_subpath(parts[5:])
    elif host == "codeberg.org" and len(parts) >= 5 and parts[2] == "src" and parts[3] == "branch":
        branch = parts[4]
        subpath = _clean_subpath(parts[5:])

    if subpath and PurePosixPath(subpath).name.lower() == "skill.md":
        subpath = str(PurePosixPath(subpath).parent) if "/" in subpath else None
    return _hosted_ref(host, owner, repo, location=None, branch=branch, subpath=subpath)


def _local_ref(path: Path) -> SourceRef:
    kind: SourceKind = "archive" if path.is_file() and is_archive_name(path.name) else "local"
    return SourceRef(kind=kind, source_id=str(path), location=str(path))


def _url_ref(source: str) -> SourceRef:
    parsed = urlparse(source)
    if parsed.scheme in {"http", "https"} and is_archive_name(parsed.path):
        return SourceRef(kind="remote-archive", source_id=source, location=source)
    hosted = parse_hosted_git_url(source)
    if hosted is not None:
        return hosted
    normalized = source.rstrip("/")
    return SourceRef(kind="git", source_id=normalized, location=normalized)


def parse_source(
    source: str,
    *,
    git_host: str = "https://github.com",
    cwd: Path | None = None,
) -> SourceRef:
    """Classify ``source`` once; later stages only see the resulting ``SourceRef``.

    Raises ``SourceNotFound`` for explicit local paths that do not exist and
    ``AmbiguousSource`` when a shorthand cannot be interpreted unambiguously.
    """
    text = source.strip()
    if not text:
        raise AmbiguousSource(source, "empty source")
    base = cwd or Path.cwd()

    if _is_explicit_local_path(text):
        path = Path(text).expanduser()
        if not path.is_absolute():
            path = base / path
        if not path.exists():
            raise SourceNotFound(text, "local path does not exist")
        return _local_ref(path.resolve())

    if _looks_like_url(text):
        return _url_ref(text)

    parts = [part for part in text.split("/") if part]
    relative = base / text
    shorthand_shaped = len(parts) >= 2 and "." not in parts[0]
    if relative.exists():
        if shorthand_shaped:
            raise AmbiguousSource(
                text,
                f"matches a local path and a repository shorthand; use './{text}' "
                f"or '{git_host}/{parts[0]}/{parts[1]}'",
            )
        return _local_ref(relative.resolve())

    if len(parts) >= 2 and "." in parts[0]:
        return _url_ref(f"https://{text}")

    if len(parts) < 2:
        raise AmbiguousSource(text, "expected owner/repo, a URL, or a local path")

    host_url = urlparse(git_host)
    host = host_url.netloc.lower().removeprefix("www.")
    subpath = _clean_subpath(parts[2:])
    if host in _HOSTED_KINDS:
        return _hosted_ref(host, parts[0], parts[1], location=None, branch=None, subpath=subpath)

    repo = parts[1].removesuffix(".git")
    url = f"{git_host}/{parts[0]}/{repo}.git"
    return SourceRef(
        kind="git",
        source_id=_with_subpath(url, subpath),
        location=url,
        subpath=subpath,
    )

