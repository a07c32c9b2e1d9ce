"""Modulefile analyzer interfaces."""

from .base import (
    AnalysisError,
    AnalysisResult,
    Dialect,
    DialectAnalyzer,
    ModuleAnalyzer,
    split_path_list,
    unique_in_order,
)
from .lmod import LmodAnalyzer
from .pathscan import scan_executables, scan_path_list
from .registry import AnalyzerRegistry
from .runtime import build_analyzer_registry
from .tcl import TclAnalyzer

__all__ = [
    "AnalysisError",
    "AnalysisResult",
    "AnalyzerRegistry",
    "Dialect",
    "DialectAnalyzer",
    "LmodAnalyzer",
    "ModuleAnalyzer",
    "TclAnalyzer",
    "build_analyzer_registry",
    "scan_executables",
    "scan_path_list",
    "split_path_list",
    "unique_in_order",
]
