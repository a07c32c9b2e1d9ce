"""Incremental sync: reuse analysis results from a previous export."""

from __future__ import annotations

import logging
from pathlib import Path

from mii.index.persistence import PersistenceError, load_index
from mii.index.table import ModuleIndex

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when a previously exported index cannot be reused."""


def preanalyze(index: ModuleIndex, prior_index_path: Path) -> int:
    """Mark unchanged modules of a freshly crawled ``index`` as analyzed.

    Modules whose path and modification time match an analyzed record of the
    index stored at ``prior_index_path`` take that record's commands and
    module paths. Nothing is crawled here; ``ModuleIndex.analyze`` folds the
    cached module paths back in and keeps reusing the prior index for the
    modules they reveal.
    Raises ``SyncError`` when the stored index cannot be loaded.
    """
    try:
        prior = load_index(prior_index_path)
    except PersistenceError as exc:
        raise SyncError(f"Couldn't import cached index: {exc}") from exc
    reused = index.reuse_from(prior)
    logger.debug("Reused %d of %d cached modules", reused, len(prior))
    return reused
