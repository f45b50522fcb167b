"""Formatting helpers shared by the CLI renderers."""

from __future__ import annotations

from datetime import UTC, datetime


def format_checksum_short(checksum: str | None) -> str:
    if checksum is None:
        return "?"
    trimmed = checksum.strip()
    if not trimmed:
        return "?"
    if trimmed.startswith("sha256:"):
        return trimmed[: len("sha256:") + 10]
    normalized = trimmed.lower()
    if len(normalized) >= 8 and all(ch in "0123456789abcdef" for ch in normalized):
        return trimmed[:7]
    return trimmed


def format_installed_at_display(installed_at: str | None) -> str:
    if not installed_at:
        return "unknown"
    normalized = installed_at.strip()
    if not normalized:
        return "unknown"
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return installed_at
    return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S")


def format_source_display(source_id: str) -> str:
    """Shorten hosted GitHub identifiers back to ``owner/repo[#subpath]``."""
    prefix = "https://github.com/"
    if not source_id.startswith(prefix):
        return source_id
    remainder = source_id[len(prefix) :]
    repo, sep, subpath = remainder.partition("#")
    repo = repo.removesuffix(".git")
    return f"{repo}{sep}{subpath}"
