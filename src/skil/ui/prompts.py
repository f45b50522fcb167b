"""prompt_toolkit implementation of the selection ``Prompter``."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from prompt_toolkit.shortcuts import checkboxlist_dialog, confirm

from skil.skills.selection import NonInteractivePrompter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skil.skills.selection import Prompter


class TerminalPrompter:
    @property
    def interactive(self) -> bool:
        return True

    def select_many(
        self,
        title: str,
        options: Sequence[tuple[str, str]],
        default: Sequence[str] = (),
    ) -> list[str] | None:
        if not options:
            return []
        result = checkboxlist_dialog(
            title=title,
            text="Space toggles, Enter confirms.",
            values=list(options),
            default_values=[value for value, _ in options if value in default],
        ).run()
        if result is None:
            return None
        return list(result)

    def confirm(self, message: str) -> bool:
        return confirm(message)


def make_prompter(*, yes: bool = False) -> Prompter:
    """Pick the terminal prompter only when both ends are a TTY and ``--yes`` is off."""
    if yes or not (sys.stdin.isatty() and sys.stdout.isatty()):
        return NonInteractivePrompter()
    return TerminalPrompter()
