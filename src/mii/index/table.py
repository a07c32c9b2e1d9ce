"""In-memory module index: crawl, fixed-point analysis, sync and search."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

from mii.adapters.base import AnalysisError, ModuleAnalyzer, split_path_list
from mii.index.discovery import discover_modulefiles
from mii.index.models import ModuleInfo, ModuleRecord, SearchHit
from mii.index.search import DEFAULT_DISTANCE_THRESHOLD, search_exact, search_fuzzy, search_info

logger = logging.getLogger(__name__)


class IndexStateError(RuntimeError):
    """Raised when an index is queried before it was built or imported."""


class ModuleIndex:
    """Owns module records in discovery order with an O(1) path lookup."""

    def __init__(self, exclude_globs: tuple[str, ...] = ()) -> None:
        self._exclude_globs = exclude_globs
        self._records: list[ModuleRecord] = []
        self._positions: dict[str, int] = {}
        self._crawled: set[str] = set()
        self._pending_count = 0
        self._search_path_roots: tuple[str, ...] = ()
        self._populated = False
        self._reuse_source: ModuleIndex | None = None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ModuleRecord]:
        return iter(self._records)

    def __contains__(self, path: object) -> bool:
        return path in self._positions

    @property
    def records(self) -> tuple[ModuleRecord, ...]:
        """Return all records in discovery order."""
        return tuple(self._records)

    @property
    def pending_count(self) -> int:
        """Return the number of records still waiting for analysis."""
        return self._pending_count

    @property
    def search_path_roots(self) -> tuple[str, ...]:
        """Return the module-path roots the index was built from."""
        return self._search_path_roots

    @property
    def populated(self) -> bool:
        """Return True once the index was built or imported."""
        return self._populated

    def get(self, path: str) -> ModuleRecord | None:
        """Return the record for a modulefile path, if present."""
        position = self._positions.get(path)
        if position is None:
            return None
        return self._records[position]

    def lineage(self, record: ModuleRecord) -> list[ModuleRecord]:
        """Return the chain of records that led to ``record``, root first."""
        chain = [record]
        current = record
        while current.parent is not None:
            current = self._records[current.parent]
            chain.append(current)
        chain.reverse()
        return chain

    def build(self, search_path: str) -> int:
        """Discard current content and crawl every root of a colon separated path."""
        self._reset()
        for position, entry in enumerate(search_path.split(":"), start=1):
            if not entry.strip():
                logger.warning("Skipping empty entry %d of module path %r", position, search_path)
        self._search_path_roots = tuple(split_path_list(search_path))
        self._populated = True
        if not self._search_path_roots:
            logger.warning("Module path %r contains no usable directories", search_path)
        added = 0
        for root in self._search_path_roots:
            added += self.add_path(root)
        return added

    def add_path(self, directory: str, parent: int | None = None) -> int:
        """Crawl one module-path directory and add pending records for new modulefiles.

        ``parent`` is the arena position of the record whose analysis revealed
        the directory, or None for a root. Returns the number of records added.
        """
        directory = os.path.abspath(directory.strip())
        if directory in self._crawled:
            return 0
        self._crawled.add(directory)
        try:
            candidates = discover_modulefiles(directory, self._exclude_globs)
        except OSError as exc:
            logger.warning("Failed to open module path %s, skipping : %s", directory, exc)
            return 0

        added = 0
        for candidate in candidates:
            if candidate.path in self._positions:
                continue
            self._append(
                ModuleRecord(
                    path=candidate.path,
                    code=candidate.code,
                    dialect=candidate.dialect,
                    mtime_ns=candidate.mtime_ns,
                    parent=parent,
                )
            )
            added += 1
        logger.debug("Added %d modules from %s", added, directory)
        return added

    def analyze(self, analyzer: ModuleAnalyzer) -> int:
        """Analyze pending records until none remain; return how many were analyzed."""
        count = 0
        position = 0
        # records discovered during the walk are appended, so the walk reaches them
        while position < len(self._records):
            record = self._records[position]
            if not record.analyzed and not self._reuse_cached(record):
                self._analyze_record(position, analyzer)
                count += 1
            else:
                self._fold_module_paths(position)
            position += 1
        return count

    def reuse_from(self, prior: ModuleIndex) -> int:
        """Copy analysis results of unchanged pending modules from ``prior``.

        A record is reused when ``prior`` holds the same path with the same
        modification time and a completed analysis. ``prior`` stays attached, so
        modules that only appear once a reused record reveals their directory
        are looked up during ``analyze`` too. Returns the number reused now.
        """
        self._reuse_source = prior
        return sum(
            1 for record in self._records if not record.analyzed and self._reuse_cached(record)
        )

    def search_exact(self, query: str) -> list[SearchHit]:
        """Return modules providing a command named exactly ``query``."""
        self._require_populated()
        return search_exact(self._records, query)

    def search_fuzzy(
        self, query: str, threshold: int = DEFAULT_DISTANCE_THRESHOLD
    ) -> list[SearchHit]:
        """Return modules providing commands similar to ``query``."""
        self._require_populated()
        return search_fuzzy(self._records, query, threshold=threshold)

    def search_info(self, code: str) -> list[ModuleInfo]:
        """Return the command listing for modules whose code is ``code``."""
        self._require_populated()
        return search_info(self._records, code)

    def replace_contents(
        self, records: list[ModuleRecord], search_path_roots: tuple[str, ...]
    ) -> None:
        """Swap in a complete set of records, as loaded from disk."""
        positions: dict[str, int] = {}
        for position, record in enumerate(records):
            if record.path in positions:
                raise ValueError(f"Duplicate module path: {record.path}")
            positions[record.path] = position
        self._records = list(records)
        self._positions = positions
        self._crawled = set()
        self._pending_count = sum(1 for record in records if not record.analyzed)
        self._search_path_roots = search_path_roots
        self._populated = True
        self._reuse_source = None

    def _analyze_record(self, position: int, analyzer: ModuleAnalyzer) -> None:
        record = self._records[position]
        try:
            result = analyzer.analyze(record.path, record.dialect)
        except AnalysisError as exc:
            logger.warning("Error occurred when analyzing %s, skipping : %s", record.path, exc)
            self._mark_analyzed(record, [])
            return
        self._mark_analyzed(record, list(result.commands))
        record.module_paths = list(result.discovered_paths)
        self._fold_module_paths(position)

    def _fold_module_paths(self, position: int) -> None:
        for discovered in self._records[position].module_paths:
            self.add_path(discovered, parent=position)

    def _reuse_cached(self, record: ModuleRecord) -> bool:
        if self._reuse_source is None:
            return False
        cached = self._reuse_source.get(record.path)
        if cached is None or not cached.analyzed or cached.mtime_ns != record.mtime_ns:
            return False
        self._mark_analyzed(record, list(cached.commands))
        record.module_paths = list(cached.module_paths)
        return True

    def _append(self, record: ModuleRecord) -> None:
        self._positions[record.path] = len(self._records)
        self._records.append(record)
        if not record.analyzed:
            self._pending_count += 1

    def _mark_analyzed(self, record: ModuleRecord, commands: list[str]) -> None:
        record.commands = commands
        if not record.analyzed:
            record.analyzed = True
            self._pending_count -= 1

    def _require_populated(self) -> None:
        if not self._populated:
            raise IndexStateError("Module index was neither built nor imported.")

    def _reset(self) -> None:
        self._records = []
        self._positions = {}
        self._crawled = set()
        self._pending_count = 0
        self._search_path_roots = ()
        self._reuse_source = None
