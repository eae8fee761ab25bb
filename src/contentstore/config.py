"""contentstore configuration loader.

Priority (high → low):
  1. CLI flags           (--db, applied by the caller)
  2. Environment variables  (CONTENTSTORE_DB, CONTENTSTORE_LOG_LEVEL)
  3. Per-project contentstore.yaml
  4. Global ~/.contentstore/config.yaml
  5. Hardcoded defaults

Files are parsed with yaml.safe_load(); an empty file counts as no settings.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".contentstore"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "contentstore.yaml"

_KNOWN_SECTIONS: frozenset[str] = frozenset(["database", "logging", "workflow"])

_LOG_LEVELS: frozenset[str] = frozenset(
    ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite settings (contentstore.yaml: database:).

    Attributes:
        path: Database file. Relative paths resolve against the project dir.
        busy_timeout: Seconds a writer waits on a locked database.
    """

    path: str = ".contentstore.db"
    busy_timeout: float = 5.0


@dataclass
class LoggingCfg:
    """Log output (contentstore.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class WorkflowCfg:
    """Workflow guard (contentstore.yaml: workflow:)."""

    enforce_transitions: bool = False


@dataclass
class ContentStoreConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)
    workflow: WorkflowCfg = field(default_factory=WorkflowCfg)
    project_dir: Path = field(default_factory=Path.cwd)

    @property
    def db_path(self) -> Path:
        path = Path(self.database.path).expanduser()
        return path if path.is_absolute() else self.project_dir / path


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignoring it.",
                UserWarning,
                stacklevel=4,
            )


def _validate_level(level: str) -> str:
    normalized = level.upper()
    if normalized not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, got '{level}'"
        )
    return normalized


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "0", "off"):
        return False
    raise ConfigError(f"{key} must be true or false, got '{value}'")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any], project_dir: Path) -> ContentStoreConfig:
    """Build a *ContentStoreConfig* from a merged raw YAML dict."""
    cfg = ContentStoreConfig(project_dir=project_dir)

    if "database" in data:
        d = data["database"] or {}
        try:
            busy_timeout = float(d.get("busy_timeout", cfg.database.busy_timeout))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"database.busy_timeout must be a number: {exc}") from exc
        if busy_timeout < 0:
            raise ConfigError(f"database.busy_timeout must be >= 0, got {busy_timeout}")
        cfg.database = DatabaseCfg(
            path=str(d.get("path", cfg.database.path)),
            busy_timeout=busy_timeout,
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=_validate_level(str(lg.get("level", cfg.logging.level))),
        )

    if "workflow" in data:
        w = data["workflow"] or {}
        cfg.workflow = WorkflowCfg(
            enforce_transitions=_parse_bool(
                w.get("enforce_transitions", cfg.workflow.enforce_transitions),
                "workflow.enforce_transitions",
            ),
        )

    return cfg


def _apply_env_overrides(cfg: ContentStoreConfig) -> ContentStoreConfig:
    """Apply CONTENTSTORE_* environment variable overrides."""
    if db := os.environ.get("CONTENTSTORE_DB"):
        cfg.database.path = db
    if level := os.environ.get("CONTENTSTORE_LOG_LEVEL"):
        cfg.logging.level = _validate_level(level)
    return cfg


def _read_layer(path: Path) -> dict[str, Any]:
    """Parse one YAML layer. A missing or empty file contributes nothing."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    _warn_unknown_keys(data, path)
    return data


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ContentStoreConfig:
    """Load and return a merged *ContentStoreConfig*.

    The global file is read first, then contentstore.yaml in *project_dir*
    (CWD when omitted); later layers win key by key. CONTENTSTORE_* env vars
    are applied last. A --db flag is the caller's to apply.

    Args:
        project_dir: Directory holding contentstore.yaml. Defaults to CWD.
        global_config_path: Replaces ~/.contentstore/config.yaml (tests use this).

    Raises:
        ConfigError: If a file is not a YAML mapping or a value is malformed
            (unknown log level, negative busy timeout, non-boolean workflow flag).
    """
    root = Path.cwd() if project_dir is None else project_dir
    layers = (
        _GLOBAL_CONFIG_PATH if global_config_path is None else global_config_path,
        root / _PROJECT_CONFIG_NAME,
    )

    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, _read_layer(layer))

    return _apply_env_overrides(_cfg_from_dict(merged, root))
