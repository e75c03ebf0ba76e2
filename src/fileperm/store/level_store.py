"""
Per-request access to explicit resource levels.

A LevelStore wraps FilePermDB with a read-through cache. The cache lives
exactly as long as the LevelStore instance: build a fresh one for every
request or operation and drop it afterwards. It is never shared, so a
write made elsewhere is visible to the next fresh instance.
"""

import logging

from fileperm.errors import InvalidLevelError, ResourceNotFoundError
from fileperm.policy.levels import LevelCatalog
from fileperm.schema import Level
from fileperm.store.db import FilePermDB

logger = logging.getLogger(__name__)


class LevelStore:
    """
    Reads and writes the single explicit level of a resource.

    Attributes:
        db: Underlying database
        catalog: Levels accepted on write
    """

    def __init__(self, db: FilePermDB, catalog: LevelCatalog) -> None:
        self.db = db
        self.catalog = catalog
        self._cache: dict[int, Level | None] = {}

    def get_level(self, resource_id: int) -> Level | None:
        """
        Get the explicit level of a resource.

        Returns None when no level is set, and also when the resource does
        not exist. The stored value is not checked against the catalog, so
        an orphaned level is returned as-is.
        """
        if resource_id in self._cache:
            return self._cache[resource_id]

        if not self.db.resource_exists(resource_id):
            return None

        level = self.db.fetch_level(resource_id)
        self._cache[resource_id] = level
        return level

    def set_level(self, resource_id: int, level: Level) -> None:
        """
        Set the explicit level of a resource, replacing any previous one.

        Raises:
            ResourceNotFoundError: If the resource does not exist
            InvalidLevelError: If the level is not configured
            StorageError: If the write fails
        """
        if not self.db.resource_exists(resource_id):
            raise ResourceNotFoundError(resource_id=resource_id)

        if not self.catalog.is_valid_level(level):
            raise InvalidLevelError(level=str(level), valid_levels=self.catalog.levels())

        self.db.upsert_level(resource_id, level)
        self._cache[resource_id] = level
        logger.debug("Set level of resource %s to %r", resource_id, level)

    def remove_level(self, resource_id: int) -> None:
        """Remove the explicit level of a resource. Absent rows are a no-op."""
        if self.db.resource_exists(resource_id):
            self.db.delete_level(resource_id)
            logger.debug("Removed level of resource %s", resource_id)
        self._cache[resource_id] = None
