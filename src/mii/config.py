"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_FUZZY_THRESHOLD = 4
MAX_FUZZY_THRESHOLD_CAP = 16
DEFAULT_EXCLUDE_GLOBS = ("**/.git/**", "**/*~", "**/*.bak", "**/*.swp")

CONFIG_FILE_NAME = "mii.toml"
INDEX_FILE_NAME = "index.jsonl"
AUDIT_FILE_NAME = "audit.jsonl"


class ConfigError(ValueError):
    """Raised for configuration problems that prevent any work."""


@dataclass(slots=True, frozen=True)
class IndexConfig:
    """Crawl and search settings."""

    modulepath: str
    exclude_globs: tuple[str, ...]
    fuzzy_threshold: int


@dataclass(slots=True, frozen=True)
class AnalysisConfig:
    """Analyzer feature toggles."""

    expand_environment: bool


@dataclass(slots=True, frozen=True)
class MiiConfig:
    """Fully merged configuration."""

    data_dir: Path
    index: IndexConfig
    analysis: AnalysisConfig

    @property
    def index_path(self) -> Path:
        """Return the persisted index location."""
        return self.data_dir / INDEX_FILE_NAME

    @property
    def audit_path(self) -> Path:
        """Return the JSONL audit log location."""
        return self.data_dir / AUDIT_FILE_NAME

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for status output."""
        return {
            "data_dir": str(self.data_dir),
            "index_path": str(self.index_path),
            "index": {
                "modulepath": self.index.modulepath,
                "exclude_globs": list(self.index.exclude_globs),
                "fuzzy_threshold": self.index.fuzzy_threshold,
            },
            "analysis": {
                "expand_environment": self.analysis.expand_environment,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    modulepath: str | None = None
    data_dir: Path | None = None
    fuzzy_threshold: int | None = None
    expand_environment: bool | None = None


def default_config(environ: Mapping[str, str] | None = None) -> MiiConfig:
    """Build default config from the process environment."""
    env = os.environ if environ is None else environ
    home = env.get("HOME", "")
    return MiiConfig(
        data_dir=Path(home) / ".mii" if home else Path(),
        index=IndexConfig(
            modulepath=env.get("MODULEPATH", ""),
            exclude_globs=DEFAULT_EXCLUDE_GLOBS,
            fuzzy_threshold=DEFAULT_FUZZY_THRESHOLD,
        ),
        analysis=AnalysisConfig(expand_environment=True),
    )


def load_config_file(data_dir: Path) -> dict[str, object]:
    """Load optional mii.toml from the data directory."""
    config_path = data_dir / CONFIG_FILE_NAME
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("rb") as handle:
            payload = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{config_path} is not valid TOML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Couldn't read {config_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"Config field '{section}.{field}' must contain only strings.")
        output.append(item)
    return tuple(output)


def merge_config(
    base: MiiConfig, file_payload: dict[str, object], overrides: CliOverrides
) -> MiiConfig:
    """Merge defaults, config file, then CLI/startup overrides."""
    index_payload = _get_table(file_payload, "index")
    analysis_payload = _get_table(file_payload, "analysis")

    modulepath = base.index.modulepath
    if "modulepath" in index_payload:
        raw_modulepath = index_payload["modulepath"]
        if isinstance(raw_modulepath, list):
            raw_modulepath = ":".join(_tuple_of_strings(raw_modulepath, "index", "modulepath"))
        if not isinstance(raw_modulepath, str):
            raise ConfigError(
                "Config field 'index.modulepath' must be a string or a list of strings."
            )
        modulepath = raw_modulepath

    exclude_globs = base.index.exclude_globs
    if "exclude_globs" in index_payload:
        exclude_globs = _tuple_of_strings(index_payload["exclude_globs"], "index", "exclude_globs")

    fuzzy_threshold = _optional_positive_int_with_cap(
        index_payload.get("fuzzy_threshold"),
        "index.fuzzy_threshold",
        base.index.fuzzy_threshold,
        MAX_FUZZY_THRESHOLD_CAP,
    )

    expand_environment = base.analysis.expand_environment
    if "expand_environment" in analysis_payload:
        raw_expand = analysis_payload["expand_environment"]
        if not isinstance(raw_expand, bool):
            raise ConfigError("Config field 'analysis.expand_environment' must be a boolean.")
        expand_environment = raw_expand

    merged = MiiConfig(
        data_dir=base.data_dir,
        index=IndexConfig(
            modulepath=modulepath,
            exclude_globs=exclude_globs,
            fuzzy_threshold=fuzzy_threshold,
        ),
        analysis=AnalysisConfig(expand_environment=expand_environment),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: MiiConfig, overrides: CliOverrides) -> MiiConfig:
    """Apply startup overrides at highest precedence."""
    fuzzy_threshold = _optional_positive_int_with_cap(
        overrides.fuzzy_threshold,
        "overrides.fuzzy_threshold",
        config.index.fuzzy_threshold,
        MAX_FUZZY_THRESHOLD_CAP,
    )
    modulepath = (
        overrides.modulepath if overrides.modulepath is not None else config.index.modulepath
    )
    expand_environment = (
        overrides.expand_environment
        if overrides.expand_environment is not None
        else config.analysis.expand_environment
    )
    data_dir = overrides.data_dir or config.data_dir
    return MiiConfig(
        data_dir=data_dir.resolve(),
        index=IndexConfig(
            modulepath=modulepath,
            exclude_globs=config.index.exclude_globs,
            fuzzy_threshold=fuzzy_threshold,
        ),
        analysis=AnalysisConfig(expand_environment=expand_environment),
    )


def load_effective_config(
    overrides: CliOverrides | None = None,
    environ: Mapping[str, str] | None = None,
) -> MiiConfig:
    """Load effective config using merge order defaults -> mii.toml -> overrides."""
    overrides = overrides or CliOverrides()
    env = os.environ if environ is None else environ
    if overrides.data_dir is None and not env.get("HOME"):
        raise ConfigError("Cannot compute default data dir: HOME variable is not set!")
    base = default_config(env)
    data_dir = overrides.data_dir or base.data_dir
    payload = load_config_file(data_dir)
    config = merge_config(base, payload, overrides)
    if not config.index.modulepath.strip():
        raise ConfigError("MODULEPATH is not set!")
    return config


def ensure_data_dir(config: MiiConfig) -> Path:
    """Create the data directory if needed and return it."""
    try:
        config.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Error initializing data directory: {exc}") from exc
    if not os.access(config.data_dir, os.W_OK):
        raise ConfigError(f"Data directory {config.data_dir} is not writable.")
    return config.data_dir


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ConfigError(f"Config field '{name}' must be <= {cap}.")
    return value
