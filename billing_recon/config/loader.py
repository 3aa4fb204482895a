from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/recon.yml``)
- Validate it against the bundled JSON schema (unknown keys are rejected)
- Apply defaults for every optional section
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "SessionConfig",
    "ExportDefaults",
    "ArchiveConfig",
    "ReconConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/recon.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_TOLERANCE = 0.05
DEFAULT_MAX_SESSIONS = 64
DEFAULT_TTL_SECONDS = 12 * 60 * 60
DEFAULT_ARCHIVE_TABLE = "excel_uploads"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection fallback; DATABASE_URL / PG* environment variables win."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SessionConfig:
    max_sessions: int = DEFAULT_MAX_SESSIONS
    ttl_seconds: int = DEFAULT_TTL_SECONDS  # 0 = sessions never expire


@dataclass(frozen=True)
class ExportDefaults:
    columns: tuple[str, ...] = ()  # empty = all columns
    include_yearly_summary: bool = True
    comparison_month: int = 12


@dataclass(frozen=True)
class ArchiveConfig:
    enabled: bool = True
    table: str = DEFAULT_ARCHIVE_TABLE


@dataclass(frozen=True)
class ReconConfig:
    source_directory: str
    output_directory: str
    logs_directory: str = "./logs"
    validation_tolerance: float = DEFAULT_TOLERANCE
    sessions: SessionConfig = field(default_factory=SessionConfig)
    export: ExportDefaults = field(default_factory=ExportDefaults)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: when the schema file is missing or invalid, or when the
            config data violates it (missing required keys, wrong types,
            unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ReconConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    sessions_raw = data.get("sessions") or {}
    export_raw = data.get("export") or {}
    archive_raw = data.get("archive") or {}
    db_raw = data.get("database") or {}

    return ReconConfig(
        source_directory=data["source_directory"],
        output_directory=data["output_directory"],
        logs_directory=data.get("logs_directory", "./logs"),
        validation_tolerance=float(data.get("validation_tolerance", DEFAULT_TOLERANCE)),
        sessions=SessionConfig(
            max_sessions=sessions_raw.get("max_sessions", DEFAULT_MAX_SESSIONS),
            ttl_seconds=sessions_raw.get("ttl_seconds", DEFAULT_TTL_SECONDS),
        ),
        export=ExportDefaults(
            columns=tuple(export_raw.get("columns", ())),
            include_yearly_summary=export_raw.get("include_yearly_summary", True),
            comparison_month=export_raw.get("comparison_month", 12),
        ),
        archive=ArchiveConfig(
            enabled=archive_raw.get("enabled", True),
            table=archive_raw.get("table", DEFAULT_ARCHIVE_TABLE),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )
