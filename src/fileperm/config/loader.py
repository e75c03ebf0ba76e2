"""
Configuration loading for FilePerm.

Turns raw administrator input (a YAML file, a YAML string or a mapping)
into an immutable FilePermConfig. Loading never raises on bad content:
validation errors are logged as warnings and recorded on the snapshot,
whose ``invalid`` flag makes every access decision deny.

Example YAML:
    levels: [public, internal, confidential]
    group_grants:
      user: [public]
      staff: [public, internal]
      sysop: ["*"]
    default_level: internal
    namespace_defaults:
      6: public
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from fileperm.config.validator import coerce_namespace, validate_config
from fileperm.schema import DEFAULT_LEVELS, FilePermConfig, ValidationResult

logger = logging.getLogger(__name__)


def build_config(raw: Any) -> FilePermConfig:
    """
    Validate raw configuration and build the snapshot.

    Args:
        raw: Mapping with levels, group_grants, default_level, namespace_defaults

    Returns:
        FilePermConfig, flagged invalid if validation found a structural error
    """
    result = validate_config(raw)
    _log_errors(result)

    if not isinstance(raw, Mapping):
        raw = {}

    return FilePermConfig(
        levels=_sanitize_levels(raw.get("levels", list(DEFAULT_LEVELS))),
        group_grants=_sanitize_grants(raw.get("group_grants")),
        default_level=_sanitize_default(raw.get("default_level")),
        namespace_defaults=_sanitize_namespace_defaults(raw.get("namespace_defaults")),
        invalid=result.fail_closed,
        errors=list(result.errors),
    )


def load_config(path: Path | str) -> FilePermConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        FilePermConfig (possibly flagged invalid)

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    with path.open() as f:
        content = f.read()
    return load_config_from_string(content)


def load_config_from_string(content: str) -> FilePermConfig:
    """Load configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        result = ValidationResult(
            valid=False,
            errors=[f"Configuration is not valid YAML: {e}"],
            fail_closed=True,
        )
        _log_errors(result)
        return FilePermConfig(levels=[], invalid=True, errors=list(result.errors))
    return build_config(data)


def _log_errors(result: ValidationResult) -> None:
    for error in result.errors:
        logger.warning("Invalid configuration - %s", error)


# =============================================================================
# Sanitizers
# =============================================================================


def _sanitize_levels(levels: Any) -> list[str]:
    if not isinstance(levels, list):
        return []
    # Merged configuration sources can repeat levels; first occurrence wins.
    seen: dict[str, None] = {}
    for level in levels:
        if isinstance(level, str) and level:
            seen.setdefault(level, None)
    return list(seen)


def _sanitize_grants(grants: Any) -> dict[str, list[str]]:
    if not isinstance(grants, Mapping):
        return {}
    return {
        group: [level for level in levels if isinstance(level, str)]
        for group, levels in grants.items()
        if isinstance(group, str) and group and isinstance(levels, list)
    }


def _sanitize_default(default: Any) -> str | None:
    return default if isinstance(default, str) else None


def _sanitize_namespace_defaults(defaults: Any) -> dict[int, str]:
    if not isinstance(defaults, Mapping):
        return {}
    sanitized = {}
    for key, level in defaults.items():
        namespace = coerce_namespace(key)
        if namespace is not None and isinstance(level, str):
            sanitized[namespace] = level
    return sanitized
