"""
Holder for the live configuration snapshot.

Readers take ``holder.policy`` once per request and use that AccessPolicy
for the whole request. A reload builds a complete new snapshot first and
then swaps the reference, so readers never see a half-built one.
"""

import logging
import threading
from pathlib import Path
from typing import Any

from fileperm.config.loader import build_config, load_config
from fileperm.policy.levels import AccessPolicy
from fileperm.schema import FilePermConfig

logger = logging.getLogger(__name__)


class ConfigHolder:
    """Keeps the current AccessPolicy and replaces it on reload."""

    def __init__(self, config: FilePermConfig) -> None:
        self._policy = AccessPolicy(config)
        self._lock = threading.Lock()

    @classmethod
    def from_raw(cls, raw: Any) -> "ConfigHolder":
        """Validate raw configuration and hold the resulting snapshot."""
        return cls(build_config(raw))

    @classmethod
    def from_file(cls, path: Path | str) -> "ConfigHolder":
        """Load a YAML configuration file and hold the resulting snapshot."""
        return cls(load_config(path))

    @property
    def policy(self) -> AccessPolicy:
        """The current snapshot with its resolvers."""
        return self._policy

    @property
    def config(self) -> FilePermConfig:
        """The current configuration snapshot."""
        return self._policy.config

    def reload(self, raw: Any) -> AccessPolicy:
        """
        Replace the snapshot with one built from new raw configuration.

        Returns:
            The new AccessPolicy
        """
        policy = AccessPolicy(build_config(raw))
        with self._lock:
            self._policy = policy
        if policy.invalid:
            logger.warning("Reloaded configuration is invalid; all access is denied")
        return policy
