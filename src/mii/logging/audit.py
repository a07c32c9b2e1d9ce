"""Append-only JSONL record of index operations."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AuditEvent:
    """One finished build, sync or query."""

    timestamp: str
    operation: str
    ok: bool
    error_code: str | None
    duration_ms: int
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def summarize_arguments(arguments: dict[str, object]) -> dict[str, object]:
    """Reduce operation arguments to small JSON scalars.

    Queries and module codes are kept verbatim. A module path is reduced to
    the number of roots it names, since site paths can be long and are
    already recorded in the index header.
    """
    summary: dict[str, object] = {}
    for key in sorted(arguments):
        value = arguments[key]
        if key == "modulepath" and isinstance(value, str):
            summary["modulepath_roots"] = len([part for part in value.split(":") if part])
        elif isinstance(value, (str, int, float, bool)) or value is None:
            summary[key] = value
        elif isinstance(value, (list, tuple)):
            summary[f"{key}_count"] = len(value)
        else:
            summary[f"{key}_type"] = type(value).__name__
    return summary


class JsonlAuditLogger:
    """Writes one JSON object per operation and reads recent ones back."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: AuditEvent) -> None:
        """Append ``event``, creating the data directory if needed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")

    def read(
        self,
        operation: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, object]]:
        """Return up to ``limit`` most recent events, oldest first."""
        if limit < 1 or not self._path.exists():
            return []
        entries: list[dict[str, object]] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed audit line %d in %s", line_number, self._path)
                    continue
                if operation is not None and entry.get("operation") != operation:
                    continue
                if since is not None and str(entry.get("timestamp", "")) < since:
                    continue
                entries.append(entry)
        return entries[-limit:]
