"""Runtime analyzer registry construction."""

from __future__ import annotations

from mii.adapters.base import Dialect
from mii.adapters.lmod import LmodAnalyzer
from mii.adapters.registry import AnalyzerRegistry
from mii.adapters.tcl import TclAnalyzer
from mii.config import MiiConfig


def build_analyzer_registry(config: MiiConfig) -> AnalyzerRegistry:
    """Build analyzer registry from effective config."""
    expand_environment = config.analysis.expand_environment
    registry = AnalyzerRegistry()
    registry.register(Dialect.LMOD, LmodAnalyzer(expand_environment=expand_environment))
    registry.register(Dialect.TCL, TclAnalyzer(expand_environment=expand_environment))
    return registry
