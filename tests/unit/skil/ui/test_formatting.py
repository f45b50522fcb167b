from __future__ import annotations

import pytest

from skil.ui.formatting import (
    format_checksum_short,
    format_installed_at_display,
    format_source_display,
)


@pytest.mark.parametrize(
    ("checksum", "expected"),
    [
        ("sha256:0123456789abcdef", "sha256:0123456789"),
        ("1a2b3c4d5e6f7a8b9c0d", "1a2b3c4"),
        ("abc123", "abc123"),
        ("", "?"),
        (None, "?"),
    ],
)
def test_format_checksum_short(checksum: str | None, expected: str) -> None:
    assert format_checksum_short(checksum) == expected


def test_format_installed_at_display() -> None:
    assert format_installed_at_display("2026-01-02T03:04:05Z") == "2026-01-02 03:04:05"
    assert format_installed_at_display("not a date") == "not a date"
    assert format_installed_at_display(None) == "unknown"


def test_format_source_display() -> None:
    assert format_source_display("https://github.com/acme/pack.git") == "acme/pack"
    assert format_source_display("https://github.com/acme/pack.git#skills/a") == "acme/pack#skills/a"
    assert format_source_display("/srv/skills") == "/srv/skills"
