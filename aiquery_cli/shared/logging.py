"""Rich-based logging helpers shared across CLI tools."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.theme import Theme
from rich.traceback import install

install(show_locals=False)

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "debug": "dim",
    }
)

# Payloads go to stdout, log chatter to stderr. Highlighting stays off so that
# SQL and API keys are never broken up by injected ANSI sequences.
_stdout_console = Console(theme=_THEME, highlight=False)
_stderr_console = Console(stderr=True, theme=_THEME, highlight=False)

LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def parse_level(level: str | None) -> int:
    """Map a level name to its threshold; unknown names fall back to INFO."""
    if not level:
        return LEVELS["INFO"]
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    return LEVELS.get(name, LEVELS["INFO"])


@dataclass(slots=True)
class Logger:
    """Lightweight logger facade backed by Rich consoles.

    ``enabled=False`` silences debug/info/success chatter; warnings and errors
    are always shown. ``verbose`` forces the DEBUG threshold.
    """

    verbose: bool = False
    level: int = LEVELS["INFO"]
    enabled: bool = True

    @property
    def console(self) -> Console:
        return _stdout_console

    def _should_emit(self, level: int) -> bool:
        threshold = LEVELS["DEBUG"] if self.verbose else self.level
        if level < threshold:
            return False
        return self.enabled or self.verbose or level >= LEVELS["WARNING"]

    def info(self, message: str) -> None:
        if self._should_emit(LEVELS["INFO"]):
            _stderr_console.print(message, style="info", markup=False)

    def success(self, message: str) -> None:
        if self._should_emit(LEVELS["INFO"]):
            _stderr_console.print(message, style="success", markup=False)

    def warning(self, message: str) -> None:
        if self._should_emit(LEVELS["WARNING"]):
            _stderr_console.print(message, style="warning", markup=False)

    def error(self, message: str) -> None:
        if self._should_emit(LEVELS["ERROR"]):
            _stderr_console.print(message, style="error", markup=False)

    def debug(self, message: str) -> None:
        if self._should_emit(LEVELS["DEBUG"]):
            _stderr_console.print(message, style="debug", markup=False)

    def reconfigure(self, *, enabled: bool, level: str | None) -> None:
        """Apply ``[general]`` logging settings after the config file loads."""
        self.enabled = enabled
        self.level = parse_level(level)


def get_logger(verbose: bool = False, *, level: str | None = None, enabled: bool = True) -> Logger:
    """Return a configured Logger instance."""
    return Logger(verbose=verbose, level=parse_level(level), enabled=enabled)
