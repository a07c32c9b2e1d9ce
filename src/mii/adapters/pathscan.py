"""Executable discovery inside PATH-style directories."""

from __future__ import annotations

import logging
import os

from mii.adapters.base import split_path_list, unique_in_order

logger = logging.getLogger(__name__)


def scan_executables(directory: str) -> list[str]:
    """Return sorted names of files in ``directory`` the user may execute.

    Symlinks are followed, so a link to an executable counts as one. Raises
    ``OSError`` when the directory itself cannot be opened.
    """
    names: list[str] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=True):
                    continue
            except OSError as exc:
                logger.warning("Couldn't stat %s : %s", entry.path, exc)
                continue
            if os.access(entry.path, os.X_OK):
                names.append(entry.name)
    names.sort()
    return names


def scan_path_list(value: str) -> list[str]:
    """Scan every directory of a colon separated list for executables."""
    found: list[str] = []
    for directory in split_path_list(value):
        logger.debug("scanning PATH %s", directory)
        try:
            found.extend(scan_executables(directory))
        except OSError as exc:
            logger.debug("Failed to open %s, ignoring : %s", directory, exc)
    return list(unique_in_order(found))
