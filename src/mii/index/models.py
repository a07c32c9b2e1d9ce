"""Typed models for module index state."""

from __future__ import annotations

from dataclasses import dataclass, field

from mii.adapters.base import Dialect


@dataclass(slots=True)
class ModuleRecord:
    """One modulefile tracked by the index.

    ``parent`` is the arena position of the record whose analysis revealed the
    directory holding this modulefile. It is lineage metadata only, so it is
    left out of equality and is not persisted. ``module_paths`` keeps the
    directories the analysis revealed so a reused record can feed them back
    into the crawl without being analyzed again.
    """

    path: str
    code: str
    dialect: Dialect
    mtime_ns: int
    commands: list[str] = field(default_factory=list)
    analyzed: bool = False
    module_paths: list[str] = field(default_factory=list)
    parent: int | None = field(default=None, compare=False)


@dataclass(slots=True, frozen=True)
class SearchHit:
    """A command match and the module providing it."""

    command: str
    module_code: str
    module_path: str
    distance: int = 0


@dataclass(slots=True, frozen=True)
class ModuleInfo:
    """Full command listing for one module."""

    code: str
    path: str
    commands: tuple[str, ...]
    analyzed: bool
