"""
Configuration validation for FilePerm.

Validation runs once at boot against the raw administrator configuration
(a mapping, usually parsed from YAML). It never raises: every failure is
collected into a ValidationResult so the host can keep running with all
access denied instead of refusing to start.

Checks, in order, accumulating all failures:
    1. ``levels`` is a non-empty list of non-empty strings
    2. Every ``group_grants`` entry is ``*`` or a configured level
    3. ``default_level``, if set, is a configured level
    4. Every ``namespace_defaults`` key is an integer namespace id and every
       value is a configured level

Severity:
    Structural errors (checks 1 and 2, wrong types anywhere, unknown keys,
    non-integer namespace ids) make the snapshot fail closed. A default that
    names an unknown level is still reported, but only degrades that one
    default to "absent" during resolution.
"""

import re
from collections.abc import Mapping
from typing import Any

from fileperm.schema import DEFAULT_LEVELS, WILDCARD, ValidationResult

KNOWN_KEYS = ("levels", "group_grants", "default_level", "namespace_defaults")

_NAMESPACE_RE = re.compile(r"^-?\d+$")


def coerce_namespace(key: Any) -> int | None:
    """
    Interpret a namespace key as an integer id.

    Accepts ints (but not bools) and integer-like strings such as "6".
    Returns None for anything else.
    """
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str) and _NAMESPACE_RE.match(key.strip()):
        return int(key.strip())
    return None


class ConfigValidator:
    """
    Validates raw FilePerm configuration.

    Usage:
        result = ConfigValidator().validate(raw)
        if not result.valid:
            for error in result.errors:
                ...

    ``validate`` reports every failure; ``fail_closed`` on the result tells
    the loader whether the snapshot must deny all.
    """

    def __init__(self) -> None:
        self._errors: list[str] = []
        self._fatal = False

    def validate(self, raw: Any) -> ValidationResult:
        """
        Validate a raw configuration mapping.

        Args:
            raw: The configuration as parsed from YAML (or built in code)

        Returns:
            ValidationResult with all errors in check order
        """
        self._errors = []
        self._fatal = False

        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            self._fail("Configuration must be a mapping")
            return self._result()

        for key in raw:
            if key not in KNOWN_KEYS:
                self._fail(f"Unknown configuration key '{key}'")

        levels = self._check_levels(raw.get("levels", list(DEFAULT_LEVELS)))
        valid_levels = set(levels)

        self._check_group_grants(raw.get("group_grants"), valid_levels)
        self._check_default_level(raw.get("default_level"), valid_levels)
        self._check_namespace_defaults(raw.get("namespace_defaults"), valid_levels)

        return self._result()

    # =========================================================================
    # Individual Checks
    # =========================================================================

    def _check_levels(self, levels: Any) -> list[str]:
        """Check 1. Returns the string levels usable for later checks."""
        if not isinstance(levels, list) or not levels:
            self._fail("levels must be a non-empty list")
            return []

        usable = []
        for index, level in enumerate(levels):
            if not isinstance(level, str) or level == "":
                self._fail(f"levels[{index}] must be a non-empty string")
                continue
            usable.append(level)
        return usable

    def _check_group_grants(self, grants: Any, valid_levels: set[str]) -> None:
        """Check 2."""
        if grants is None:
            return
        if not isinstance(grants, Mapping):
            self._fail("group_grants must be a mapping of group name to levels")
            return

        for group, levels in grants.items():
            if not isinstance(group, str) or group == "":
                self._fail(f"group_grants key {group!r} must be a non-empty group name")
                continue
            if not isinstance(levels, list):
                self._fail(f"Grant for group '{group}' must be a list")
                continue
            for level in levels:
                if level == WILDCARD:
                    continue
                if not isinstance(level, str) or level not in valid_levels:
                    self._fail(f"Grant for group '{group}' references unknown level '{level}'")

    def _check_default_level(self, default: Any, valid_levels: set[str]) -> None:
        """Check 3."""
        if default is None:
            return
        if not isinstance(default, str):
            self._fail("default_level must be a string or null")
        elif default not in valid_levels:
            self._degrade(f"default_level references unknown level '{default}'")

    def _check_namespace_defaults(self, defaults: Any, valid_levels: set[str]) -> None:
        """Check 4."""
        if defaults is None:
            return
        if not isinstance(defaults, Mapping):
            self._fail("namespace_defaults must be a mapping of namespace id to level")
            return

        for key, level in defaults.items():
            namespace = coerce_namespace(key)
            if namespace is None:
                self._fail(f"namespace_defaults key {key!r} must be an integer namespace id")
                continue
            if not isinstance(level, str):
                self._fail(f"namespace_defaults[{namespace}] must be a string")
            elif level not in valid_levels:
                self._degrade(
                    f"namespace_defaults[{namespace}] references unknown level '{level}'"
                )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(self, message: str) -> None:
        self._errors.append(message)
        self._fatal = True

    def _degrade(self, message: str) -> None:
        self._errors.append(message)

    def _result(self) -> ValidationResult:
        return ValidationResult(
            valid=not self._errors,
            errors=list(self._errors),
            fail_closed=self._fatal,
        )


def validate_config(raw: Any) -> ValidationResult:
    """Validate a raw configuration mapping. See ConfigValidator."""
    return ConfigValidator().validate(raw)
