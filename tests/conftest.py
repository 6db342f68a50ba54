from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from aiquery_cli.shared.logging import Logger


class RecordingLogger(Logger):
    """Logger that keeps messages in memory instead of printing them."""

    __slots__ = ("records",)

    def __init__(self) -> None:
        super().__init__(verbose=True)
        self.records: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.records.append(("info", message))

    def success(self, message: str) -> None:
        self.records.append(("success", message))

    def warning(self, message: str) -> None:
        self.records.append(("warning", message))

    def error(self, message: str) -> None:
        self.records.append(("error", message))

    def debug(self, message: str) -> None:
        self.records.append(("debug", message))

    def messages(self, level: str) -> list[str]:
        return [message for recorded_level, message in self.records if recorded_level == level]


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    def _write(content: str, name: str = ".aiquery.config") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
