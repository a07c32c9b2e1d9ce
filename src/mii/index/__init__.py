"""Module index, persistence and search package."""

from .discovery import ModuleCandidate, detect_dialect, discover_modulefiles, module_code
from .models import ModuleInfo, ModuleRecord, SearchHit
from .persistence import (
    INDEX_SCHEMA_VERSION,
    IndexFileCorruptError,
    IndexFileMissingError,
    IndexFileUnreadableError,
    IndexHeader,
    IndexSchemaUnsupportedError,
    PersistenceError,
    export_index,
    import_index,
    load_index,
    read_index_header,
)
from .search import DEFAULT_DISTANCE_THRESHOLD, edit_distance
from .sync import SyncError, preanalyze
from .table import IndexStateError, ModuleIndex

__all__ = [
    "DEFAULT_DISTANCE_THRESHOLD",
    "INDEX_SCHEMA_VERSION",
    "IndexFileCorruptError",
    "IndexFileMissingError",
    "IndexFileUnreadableError",
    "IndexHeader",
    "IndexSchemaUnsupportedError",
    "IndexStateError",
    "ModuleCandidate",
    "ModuleIndex",
    "ModuleInfo",
    "ModuleRecord",
    "PersistenceError",
    "SearchHit",
    "SyncError",
    "detect_dialect",
    "discover_modulefiles",
    "edit_distance",
    "export_index",
    "import_index",
    "load_index",
    "module_code",
    "preanalyze",
    "read_index_header",
]
