"""
Pytest configuration and fixtures for FilePerm tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from fileperm.config import build_config
from fileperm.policy import AccessPolicy
from fileperm.schema import FilePermConfig
from fileperm.store import FilePermDB

NS_FILE = 6


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir: Path) -> Generator[FilePermDB, None, None]:
    """Create a database instance in a temporary directory."""
    database = FilePermDB(temp_dir / "fileperm.db")
    yield database
    database.close()


@pytest.fixture
def raw_config() -> dict:
    """Return a valid raw configuration mapping."""
    return {
        "levels": ["public", "internal", "confidential"],
        "group_grants": {
            "user": ["public"],
            "staff": ["public", "internal"],
            "sysop": ["*"],
        },
        "default_level": None,
        "namespace_defaults": {},
    }


@pytest.fixture
def config(raw_config: dict) -> FilePermConfig:
    """Return a valid configuration snapshot."""
    return build_config(raw_config)


@pytest.fixture
def policy(config: FilePermConfig) -> AccessPolicy:
    """Return an AccessPolicy over the valid snapshot."""
    return AccessPolicy(config)


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid configuration YAML."""
    return """
levels: [public, internal, confidential]
group_grants:
  user: [public]
  staff: [public, internal]
  sysop: ["*"]
default_level: internal
namespace_defaults:
  6: public
"""


@pytest.fixture
def invalid_config_yaml() -> str:
    """Return a configuration YAML whose grants reference an unknown level."""
    return """
levels: [public, internal]
group_grants:
  staff: [public, secret]
  sysop: ["*"]
"""
