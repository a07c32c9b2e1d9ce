"""Analyzer registry dispatching on modulefile dialect."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import TracebackType

from mii.adapters.base import AnalysisError, AnalysisResult, Dialect, DialectAnalyzer


@dataclass(slots=True)
class AnalyzerRegistry:
    """Dialect-keyed analyzer registry, released as a unit with ``close``."""

    _analyzers: dict[Dialect, DialectAnalyzer] = field(default_factory=dict)
    _closed: bool = False

    def register(self, dialect: Dialect, analyzer: DialectAnalyzer) -> None:
        """Register the analyzer used for one dialect, replacing any previous one."""
        self._analyzers[dialect] = analyzer

    def select(self, dialect: Dialect) -> DialectAnalyzer:
        """Return the analyzer registered for a dialect."""
        analyzer = self._analyzers.get(dialect)
        if analyzer is None:
            raise LookupError(f"No analyzer registered for dialect: {dialect.value}")
        return analyzer

    def analyze(self, path: str, dialect: Dialect) -> AnalysisResult:
        """Analyze one modulefile with the analyzer for its dialect."""
        if self._closed:
            raise AnalysisError(path, "analyzer registry is closed")
        try:
            analyzer = self.select(dialect)
        except LookupError as exc:
            raise AnalysisError(path, str(exc)) from exc
        return analyzer.analyze(path)

    def names(self) -> tuple[str, ...]:
        """Return registered analyzer names in registration order."""
        return tuple(analyzer.name for analyzer in self._analyzers.values())

    def close(self) -> None:
        """Release every registered analyzer."""
        if self._closed:
            return
        for analyzer in self._analyzers.values():
            analyzer.close()
        self._closed = True

    def __enter__(self) -> AnalyzerRegistry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
