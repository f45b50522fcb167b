"""Structured logger used throughout skil.

Call sites pass a message plus an optional ``data`` mapping, which is rendered
after the message so log lines stay greppable.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from skil.config import LoggerSettings

_ROOT_LOGGER_NAME = "skil"
_HANDLER_MARKER = "_skil_handler"


class Logger:
    def __init__(self, name: str) -> None:
        self.name = name
        self._logger = logging.getLogger(name)

    def debug(self, message: str, data: Any = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, data, **kwargs)

    def info(self, message: str, data: Any = None, **kwargs: Any) -> None:
        self._log(logging.INFO, message, data, **kwargs)

    def warning(self, message: str, data: Any = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, data, **kwargs)

    def error(self, message: str, data: Any = None, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, data, **kwargs)

    def _log(self, level: int, message: str, data: Any, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if data is not None:
            message = f"{message} {_format_data(data)}"
        self._logger.log(level, message, **kwargs)


def _format_data(data: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(data)


def get_logger(name: str) -> Logger:
    return Logger(name)


def configure_logging(settings: LoggerSettings | None = None, *, verbose: bool = False) -> None:
    """Attach a rich stderr handler to the ``skil`` logger hierarchy."""
    level_name = "debug" if verbose else (settings.level if settings else "warning")
    show_path = settings.show_path if settings else False

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(level_name.upper())
    root.propagate = False
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=show_path,
        show_time=False,
        rich_tracebacks=True,
    )
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)
