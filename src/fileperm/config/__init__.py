"""
Configuration module for FilePerm.

Raw administrator configuration is validated once at boot and frozen into
a FilePermConfig snapshot. Validation never aborts startup: a structurally
invalid configuration yields a snapshot flagged ``invalid``, and every
level check against it denies (fail-closed).
"""

from fileperm.config.holder import ConfigHolder
from fileperm.config.loader import build_config, load_config, load_config_from_string
from fileperm.config.validator import ConfigValidator, validate_config

__all__ = [
    "ConfigHolder",
    "ConfigValidator",
    "build_config",
    "load_config",
    "load_config_from_string",
    "validate_config",
]
