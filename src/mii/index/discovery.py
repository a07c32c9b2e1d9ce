"""Deterministic modulefile discovery under one module-path directory."""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from mii.adapters.base import Dialect

logger = logging.getLogger(__name__)

LMOD_SUFFIX = ".lua"
TCL_MAGIC = b"#%Module"


@dataclass(slots=True, frozen=True)
class ModuleCandidate:
    """Modulefile found on disk, before it becomes an index record."""

    path: str
    code: str
    dialect: Dialect
    mtime_ns: int


def discover_modulefiles(
    directory: str,
    exclude_globs: tuple[str, ...] = (),
) -> list[ModuleCandidate]:
    """Walk ``directory`` and return modulefiles in sorted path order.

    Hidden entries are skipped, which also drops Lmod ``.version`` and
    ``.modulerc`` files. Directory symlinks are not followed. A root that
    cannot be opened raises ``OSError``; unreadable subdirectories are logged
    and skipped.
    """
    root = directory.rstrip("/") or "/"
    with os.scandir(root) as entries:
        top_level = sorted(entries, key=lambda item: item.name)

    candidates: list[ModuleCandidate] = []
    stack: list[tuple[str, list[os.DirEntry[str]]]] = [(root, top_level)]
    while stack:
        current, ordered_entries = stack.pop()
        subdirectories: list[str] = []
        for entry in ordered_entries:
            if entry.name.startswith("."):
                continue
            relative = os.path.relpath(entry.path, root)
            if should_exclude(relative, exclude_globs):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirectories.append(entry.path)
                    continue
                if not entry.is_file(follow_symlinks=True):
                    continue
                stat = entry.stat(follow_symlinks=True)
            except OSError as exc:
                logger.warning("Couldn't stat %s : %s", entry.path, exc)
                continue
            candidate = _classify(entry.path, relative, stat.st_mtime_ns)
            if candidate is not None:
                candidates.append(candidate)
        for subdirectory in reversed(subdirectories):
            try:
                with os.scandir(subdirectory) as entries:
                    nested = sorted(entries, key=lambda item: item.name)
            except OSError as exc:
                logger.warning("Failed to open %s, skipping : %s", subdirectory, exc)
                continue
            stack.append((subdirectory, nested))
    candidates.sort(key=lambda item: item.path)
    return candidates


def detect_dialect(path: str) -> Dialect | None:
    """Return the dialect of a modulefile, or None for anything else."""
    if path.endswith(LMOD_SUFFIX):
        return Dialect.LMOD
    try:
        with open(path, "rb") as handle:
            header = handle.read(len(TCL_MAGIC))
    except OSError as exc:
        logger.debug("Couldn't read header of %s : %s", path, exc)
        return None
    if header == TCL_MAGIC:
        return Dialect.TCL
    return None


def module_code(relative_path: str, dialect: Dialect) -> str:
    """Derive the module name/version code from a root-relative path."""
    code = Path(relative_path).as_posix()
    if dialect is Dialect.LMOD and code.endswith(LMOD_SUFFIX):
        code = code[: -len(LMOD_SUFFIX)]
    return code


def should_exclude(relative_path: str, exclude_globs: tuple[str, ...]) -> bool:
    """Return True when a path matches configured ignore globs."""
    anchored = f"/{relative_path}"
    return any(
        fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(anchored, pattern)
        for pattern in exclude_globs
    )


def _classify(path: str, relative_path: str, mtime_ns: int) -> ModuleCandidate | None:
    dialect = detect_dialect(path)
    if dialect is None:
        return None
    return ModuleCandidate(
        path=path,
        code=module_code(relative_path, dialect),
        dialect=dialect,
        mtime_ns=mtime_ns,
    )
