"""Core analyzer protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class Dialect(str, Enum):
    """Modulefile dialects understood by the analyzers."""

    LMOD = "lmod"
    TCL = "tcl"


@dataclass(slots=True, frozen=True)
class AnalysisResult:
    """Commands and module-path directories exposed by one modulefile."""

    commands: tuple[str, ...]
    discovered_paths: tuple[str, ...]


class AnalysisError(Exception):
    """Raised when a modulefile cannot be read or understood."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


def split_path_list(value: str) -> list[str]:
    """Split a colon separated directory list, dropping empty entries."""
    return [part for part in value.split(":") if part.strip()]


def unique_in_order(values: list[str]) -> tuple[str, ...]:
    """Drop repeated values while keeping first-seen order."""
    return tuple(dict.fromkeys(values))


class DialectAnalyzer(Protocol):
    """Protocol implemented by per-dialect analyzers."""

    name: str

    def analyze(self, path: str) -> AnalysisResult:
        """Return commands and discovered module paths for a modulefile."""

    def close(self) -> None:
        """Release any state held by the analyzer."""


class ModuleAnalyzer(Protocol):
    """Protocol consumed by the module index."""

    def analyze(self, path: str, dialect: Dialect) -> AnalysisResult:
        """Return commands and discovered module paths for a modulefile."""
