"""JSON Lines persistence for module indexes."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from mii.adapters.base import Dialect
from mii.index.models import ModuleRecord
from mii.index.table import ModuleIndex

INDEX_SCHEMA_VERSION = 1
INDEX_FORMAT = "mii-index"


@dataclass(slots=True, frozen=True)
class IndexHeader:
    """Validated first line of an index file."""

    schema_version: int
    record_count: int
    search_path: tuple[str, ...]
    exported_at: str | None


class PersistenceError(Exception):
    """Base class for index files that cannot be used."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class IndexFileMissingError(PersistenceError):
    """Raised when no index file exists at the requested location."""


class IndexFileUnreadableError(PersistenceError):
    """Raised when the index file exists but cannot be read."""


class IndexFileCorruptError(PersistenceError):
    """Raised when the index file is truncated or malformed."""


class IndexSchemaUnsupportedError(IndexFileCorruptError):
    """Raised when stored index schema does not match supported version."""

    def __init__(self, path: Path, found: int, expected: int) -> None:
        super().__init__(path, f"schema version {found} is not supported (expected {expected})")
        self.found = found
        self.expected = expected


def export_index(index: ModuleIndex, path: Path) -> None:
    """Write a complete snapshot of ``index``, atomically replacing ``path``."""
    header = {
        "schema_version": INDEX_SCHEMA_VERSION,
        "format": INDEX_FORMAT,
        "record_count": len(index),
        "search_path": list(index.search_path_roots),
        "exported_at": _utc_now_iso(),
    }
    rows: list[dict[str, object]] = [header]
    rows.extend(record_to_row(record) for record in index)
    _atomic_write_jsonl(path, rows)


def import_index(index: ModuleIndex, path: Path) -> None:
    """Replace the contents of ``index`` with the snapshot stored at ``path``.

    The file is fully parsed and validated before ``index`` is touched, so a
    failure leaves it exactly as it was.
    """
    lines = _read_lines(path)
    if not lines:
        raise IndexFileCorruptError(path, "file is empty")
    header = _parse_header(path, lines[0])
    records: list[ModuleRecord] = []
    seen: set[str] = set()
    for line_number, line in enumerate(lines[1:], start=2):
        record = _parse_record(path, line_number, line)
        if record.path in seen:
            raise IndexFileCorruptError(path, f"line {line_number}: duplicate path {record.path}")
        seen.add(record.path)
        records.append(record)
    expected = header.record_count
    if len(records) != expected:
        raise IndexFileCorruptError(
            path, f"expected {expected} records, found {len(records)} (truncated?)"
        )
    index.replace_contents(records, header.search_path)


def load_index(path: Path, exclude_globs: tuple[str, ...] = ()) -> ModuleIndex:
    """Return a new index holding the snapshot stored at ``path``."""
    index = ModuleIndex(exclude_globs=exclude_globs)
    import_index(index, path)
    return index


def read_index_header(path: Path) -> IndexHeader:
    """Read and validate only the header line of an index file."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            first_line = handle.readline()
    except FileNotFoundError as exc:
        raise IndexFileMissingError(path, "index file does not exist") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise IndexFileUnreadableError(path, str(exc)) from exc
    if not first_line.strip():
        raise IndexFileCorruptError(path, "file is empty")
    return _parse_header(path, first_line)


def record_to_row(record: ModuleRecord) -> dict[str, object]:
    """Serialize one record; lineage is not part of the snapshot."""
    return {
        "path": record.path,
        "code": record.code,
        "dialect": record.dialect.value,
        "mtime_ns": record.mtime_ns,
        "commands": list(record.commands),
        "analyzed": record.analyzed,
        "module_paths": list(record.module_paths),
    }


def _read_lines(path: Path) -> list[str]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw_lines = handle.read().splitlines()
    except FileNotFoundError as exc:
        raise IndexFileMissingError(path, "index file does not exist") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise IndexFileUnreadableError(path, str(exc)) from exc
    return [line for line in raw_lines if line.strip()]


def _load_object(path: Path, line_number: int, line: str) -> dict[str, object]:
    try:
        obj = json.loads(line)
    except json.JSONDecodeError as exc:
        raise IndexFileCorruptError(path, f"line {line_number}: invalid JSON ({exc.msg})") from exc
    if not isinstance(obj, dict):
        raise IndexFileCorruptError(path, f"line {line_number}: expected an object")
    return obj


def _parse_header(path: Path, line: str) -> IndexHeader:
    header = _load_object(path, 1, line)
    if header.get("format") != INDEX_FORMAT:
        raise IndexFileCorruptError(path, "missing index header")
    schema = header.get("schema_version")
    if not isinstance(schema, int) or isinstance(schema, bool):
        raise IndexSchemaUnsupportedError(path, found=-1, expected=INDEX_SCHEMA_VERSION)
    if schema != INDEX_SCHEMA_VERSION:
        raise IndexSchemaUnsupportedError(path, found=schema, expected=INDEX_SCHEMA_VERSION)
    record_count = header.get("record_count")
    if not isinstance(record_count, int) or isinstance(record_count, bool) or record_count < 0:
        raise IndexFileCorruptError(path, "header record_count must be a non-negative integer")
    search_path = header.get("search_path")
    if not isinstance(search_path, list) or not all(isinstance(p, str) for p in search_path):
        raise IndexFileCorruptError(path, "header search_path must be a list of strings")
    exported_at = header.get("exported_at")
    return IndexHeader(
        schema_version=schema,
        record_count=record_count,
        search_path=tuple(search_path),
        exported_at=exported_at if isinstance(exported_at, str) else None,
    )


def _parse_record(path: Path, line_number: int, line: str) -> ModuleRecord:
    obj = _load_object(path, line_number, line)
    record_path = obj.get("path")
    code = obj.get("code")
    dialect = obj.get("dialect")
    mtime_ns = obj.get("mtime_ns")
    commands = obj.get("commands")
    analyzed = obj.get("analyzed")
    module_paths = obj.get("module_paths", [])
    if not isinstance(record_path, str) or not record_path:
        raise IndexFileCorruptError(path, f"line {line_number}: path must be a string")
    if not isinstance(code, str):
        raise IndexFileCorruptError(path, f"line {line_number}: code must be a string")
    if not isinstance(mtime_ns, int) or isinstance(mtime_ns, bool):
        raise IndexFileCorruptError(path, f"line {line_number}: mtime_ns must be an integer")
    if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
        raise IndexFileCorruptError(path, f"line {line_number}: commands must be strings")
    if not isinstance(analyzed, bool):
        raise IndexFileCorruptError(path, f"line {line_number}: analyzed must be a boolean")
    if not isinstance(module_paths, list) or not all(isinstance(p, str) for p in module_paths):
        raise IndexFileCorruptError(path, f"line {line_number}: module_paths must be strings")
    try:
        parsed_dialect = Dialect(dialect)
    except ValueError as exc:
        raise IndexFileCorruptError(
            path, f"line {line_number}: unknown dialect {dialect!r}"
        ) from exc
    return ModuleRecord(
        path=record_path,
        code=code,
        dialect=parsed_dialect,
        mtime_ns=mtime_ns,
        commands=list(commands),
        analyzed=analyzed,
        module_paths=list(module_paths),
    )


def _atomic_write_jsonl(path: Path, rows: list[dict[str, object]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            for row in rows:
                handle.write(json.dumps(row, sort_keys=True))
                handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
