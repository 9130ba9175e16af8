from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from .canonicalize import CanonicalizeOptions

LOGGER = logging.getLogger(__name__)

BUILDER_NAMES = ("adult", "neonatal", "chemo")
STATUS_VALUES = ("edit", "review", "publish")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(ValueError):
    """Raised when the environment or the YAML run configuration is invalid."""


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class Settings:
    db_user: str
    db_password: str
    db_host: str
    db_port: int
    db_name: str
    db_schema: str = "phormulary_dev"
    db_sslmode: str = "require"
    compile_timeout: float = 60.0
    compile_isolated: bool = True
    workers: int = 1
    pharmacy_id: int = 55
    created_by: int = -999
    edited_by: int = -999


def load_settings(env_file: Optional[Path] = None) -> Settings:
    load_dotenv(env_file)
    return Settings(
        db_user=os.getenv("DB_USER", ""),
        db_password=os.getenv("DB_PASSWORD", ""),
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=_parse_int(os.getenv("DB_PORT"), 5432),
        db_name=os.getenv("DB_NAME", ""),
        db_schema=os.getenv("DB_SCHEMA", "phormulary_dev"),
        db_sslmode=os.getenv("DB_SSLMODE", "require"),
        compile_timeout=_parse_float(os.getenv("COMPILE_TIMEOUT"), 60.0),
        compile_isolated=_parse_bool(os.getenv("COMPILE_ISOLATED"), True),
        workers=max(1, _parse_int(os.getenv("MIGRATION_WORKERS"), 1)),
        pharmacy_id=_parse_int(os.getenv("PHARMACY_ID"), 55),
        created_by=_parse_int(os.getenv("CREATED_BY"), -999),
        edited_by=_parse_int(os.getenv("EDITED_BY"), -999),
    )


def validate_identifier(name: str) -> str:
    """Schema names are interpolated into SQL, so only plain identifiers pass."""

    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ConfigError(f"Invalid SQL identifier: {name!r}")
    return name


@dataclass
class SourceEntry:
    name: str
    builder: str
    path: Path
    sheet_name: Union[str, int] = 0
    pharmacy_id: Optional[int] = None
    status: Optional[str] = None
    canonicalize: Optional[CanonicalizeOptions] = None


@dataclass
class RunConfig:
    path: Path
    sources: List[SourceEntry]

    def get(self, name: str) -> Optional[SourceEntry]:
        for source in self.sources:
            if source.name == name:
                return source
        return None


def _parse_source(item: Dict[str, Any], base: Path) -> Optional[SourceEntry]:
    builder = str(item.get("builder", "")).strip().lower()
    raw_path = item.get("path")
    if not raw_path or builder not in BUILDER_NAMES:
        LOGGER.warning("Skipping invalid source entry (missing path or unknown builder): %s", item)
        return None

    status = item.get("status")
    if status is not None and status not in STATUS_VALUES:
        raise ConfigError(f"Source status must be one of {STATUS_VALUES}, got {status!r}")

    options_cfg = item.get("canonicalize")
    options = None
    try:
        if options_cfg:
            if not isinstance(options_cfg, dict):
                raise TypeError("expected a mapping")
            options = CanonicalizeOptions(**{k: str(v) for k, v in options_cfg.items()})
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid canonicalize block for source {item.get('name')!r}: {exc}") from exc

    pharmacy_id = item.get("pharmacy_id")
    return SourceEntry(
        name=str(item.get("name") or builder),
        builder=builder,
        path=(base / str(raw_path)).expanduser().resolve(),
        sheet_name=item.get("sheet_name", 0),
        pharmacy_id=int(pharmacy_id) if pharmacy_id is not None else None,
        status=status,
        canonicalize=options,
    )


def load_run_config(path: Path) -> RunConfig:
    """Load the YAML list of spreadsheet sources to migrate."""

    if not path.exists():
        raise ConfigError(f"Run config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML config at {path}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Run config must be a mapping with a 'sources' list.")

    sources_cfg = parsed.get("sources", [])
    if not isinstance(sources_cfg, list):
        raise ConfigError("'sources' must be a list of spreadsheet entries.")

    sources: List[SourceEntry] = []
    for item in sources_cfg:
        if not isinstance(item, dict):
            continue
        entry = _parse_source(item, path.parent)
        if entry is not None:
            sources.append(entry)
    return RunConfig(path=path, sources=sources)


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")
