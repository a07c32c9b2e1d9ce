"""Build, sync and search orchestration over the persisted module index."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import TypeVar

from mii.adapters import build_analyzer_registry
from mii.config import CliOverrides, MiiConfig, ensure_data_dir, load_effective_config
from mii.index import (
    IndexFileCorruptError,
    IndexFileMissingError,
    IndexSchemaUnsupportedError,
    ModuleIndex,
    ModuleInfo,
    PersistenceError,
    SearchHit,
    SyncError,
    export_index,
    import_index,
    preanalyze,
    read_index_header,
)
from mii.logging import AuditEvent, JsonlAuditLogger, summarize_arguments, utc_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class IndexStatus:
    """Current index status snapshot."""

    index_status: str
    last_export_timestamp: str | None
    indexed_module_count: int
    search_path: tuple[str, ...]


class MiiService:
    """Runs index operations for one effective configuration."""

    def __init__(self, config: MiiConfig) -> None:
        self._config = config
        self._index_path = config.index_path
        self._audit_logger = JsonlAuditLogger(path=config.audit_path)

    @property
    def config(self) -> MiiConfig:
        """Return the effective configuration."""
        return self._config

    @property
    def audit_logger(self) -> JsonlAuditLogger:
        """Return the operation audit log."""
        return self._audit_logger

    def build(self) -> dict[str, object]:
        """Rebuild the index from the modules on disk and export it."""
        return self._audited("build", {"modulepath": self._config.index.modulepath}, self._build)

    def sync(self) -> dict[str, object]:
        """Re-analyze only modules that changed since the last export."""
        return self._audited("sync", {"modulepath": self._config.index.modulepath}, self._sync)

    def search_exact(self, command: str) -> list[SearchHit]:
        """Return modules providing exactly ``command``."""
        return self._audited(
            "exact",
            {"query": command},
            lambda: self._load_or_build().search_exact(command),
        )

    def search_fuzzy(self, command: str) -> list[SearchHit]:
        """Return modules providing commands similar to ``command``."""
        threshold = self._config.index.fuzzy_threshold
        return self._audited(
            "search",
            {"query": command, "threshold": threshold},
            lambda: self._load_or_build().search_fuzzy(command, threshold=threshold),
        )

    def info(self, code: str) -> list[ModuleInfo]:
        """Return the command listing of the module named ``code``."""
        return self._audited(
            "info",
            {"code": code},
            lambda: self._load_or_build().search_info(code),
        )

    def audit_events(
        self, operation: str | None = None, since: str | None = None, limit: int = 50
    ) -> list[dict[str, object]]:
        """Return recent audit events, oldest first."""
        return self._audit_logger.read(operation=operation, since=since, limit=limit)

    def status(self) -> IndexStatus:
        """Return status derived from the index header, if present."""
        try:
            header = read_index_header(self._index_path)
        except IndexFileMissingError:
            return IndexStatus("not_indexed", None, 0, ())
        except IndexSchemaUnsupportedError:
            return IndexStatus("schema_mismatch", None, 0, ())
        except IndexFileCorruptError:
            return IndexStatus("corrupt", None, 0, ())
        except PersistenceError:
            return IndexStatus("unreadable", None, 0, ())
        return IndexStatus(
            index_status="ready",
            last_export_timestamp=header.exported_at,
            indexed_module_count=header.record_count,
            search_path=header.search_path,
        )

    def _build(self) -> dict[str, object]:
        ensure_data_dir(self._config)
        started = time.perf_counter()
        index = self._new_index()
        with build_analyzer_registry(self._config) as analyzer:
            index.build(self._config.index.modulepath)
            count = index.analyze(analyzer)

        if count:
            logger.info("Finished analysis on %d modules", count)
        else:
            logger.warning("Didn't analyze any modules. Is the MODULEPATH correct?")

        export_index(index, self._index_path)
        return {
            "analyzed": count,
            "reused": 0,
            "modules": len(index),
            "exported": True,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }

    def _sync(self) -> dict[str, object]:
        ensure_data_dir(self._config)
        started = time.perf_counter()
        index = self._new_index()
        prior_count: int | None = None
        with build_analyzer_registry(self._config) as analyzer:
            index.build(self._config.index.modulepath)
            try:
                preanalyze(index, self._index_path)
                prior_count = read_index_header(self._index_path).record_count
            except (SyncError, PersistenceError) as exc:
                logger.warning(
                    "Error occurred during index preanalysis, will rebuild the whole cache! (%s)",
                    exc,
                )
            count = index.analyze(analyzer)
        reused = len(index) - count

        # removed modules change the index even when nothing needed analysis
        exported = count > 0 or prior_count != len(index)
        if count:
            logger.info("Finished analysis on %d modules", count)
        if exported:
            export_index(index, self._index_path)
        else:
            logger.info("All modules up to date :)")
        return {
            "analyzed": count,
            "reused": reused,
            "modules": len(index),
            "exported": exported,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }

    def _load_or_build(self) -> ModuleIndex:
        index = self._new_index()
        try:
            import_index(index, self._index_path)
        except PersistenceError as exc:
            logger.warning("Couldn't import module index, will try and build one now. (%s)", exc)
            self._build()
            logger.info("Trying to import new index..")
            import_index(index, self._index_path)
        return index

    def _new_index(self) -> ModuleIndex:
        return ModuleIndex(exclude_globs=self._config.index.exclude_globs)

    def _audited(
        self, operation: str, arguments: dict[str, object], action: Callable[[], T]
    ) -> T:
        started = time.perf_counter()
        metadata = summarize_arguments(arguments)
        try:
            result = action()
        except Exception as exc:
            self._append_event(operation, started, metadata, error_code=type(exc).__name__)
            raise
        if isinstance(result, dict):
            metadata.update(
                {key: value for key, value in result.items() if key != "duration_ms"}
            )
        elif isinstance(result, list):
            metadata["result_count"] = len(result)
        self._append_event(operation, started, metadata, error_code=None)
        return result

    def _append_event(
        self,
        operation: str,
        started: float,
        metadata: dict[str, object],
        error_code: str | None,
    ) -> None:
        event = AuditEvent(
            timestamp=utc_timestamp(),
            operation=operation,
            ok=error_code is None,
            error_code=error_code,
            duration_ms=int((time.perf_counter() - started) * 1000),
            metadata=metadata,
        )
        try:
            self._audit_logger.append(event)
        except OSError as exc:
            logger.warning("Couldn't write audit log %s : %s", self._audit_logger.path, exc)


def create_service(
    cli_overrides: CliOverrides | None = None,
    environ: Mapping[str, str] | None = None,
) -> MiiService:
    """Create a service from defaults, the config file and CLI overrides."""
    config = load_effective_config(overrides=cli_overrides, environ=environ)
    return MiiService(config=config)


def status_to_dict(status: IndexStatus) -> dict[str, object]:
    """Return a JSON-ready status mapping."""
    payload = asdict(status)
    payload["search_path"] = list(status.search_path)
    return payload
