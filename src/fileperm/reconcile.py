"""
Detection and repair of orphaned levels.

Levels are stored as plain strings. When an administrator renames or
removes a level, rows that still carry the old name become orphans: they
are read back unchanged and only a wildcard grant can open them. This
module finds those rows and rewrites them on request.
"""

import logging

from fileperm.errors import InvalidLevelError, ResourceNotFoundError
from fileperm.policy.levels import LevelCatalog
from fileperm.schema import Level, OrphanedLevel, ReconcileResult
from fileperm.store.db import FilePermDB
from fileperm.store.level_store import LevelStore

logger = logging.getLogger(__name__)


def find_orphans(db: FilePermDB, catalog: LevelCatalog) -> list[OrphanedLevel]:
    """List stored levels that are not in the configured level set."""
    return [
        OrphanedLevel(**row)
        for row in db.list_levels()
        if not catalog.is_valid_level(row["level"])
    ]


def parse_fix(fix: str) -> tuple[Level, Level]:
    """
    Parse an ``old_level:new_level`` replacement.

    Raises:
        ValueError: If either side is missing
    """
    old, sep, new = fix.partition(":")
    if not sep or not old or not new:
        raise ValueError("Invalid fix format. Expected old_level:new_level")
    return old, new


def apply_fix(
    db: FilePermDB,
    catalog: LevelCatalog,
    old_level: Level,
    new_level: Level,
) -> ReconcileResult:
    """
    Rewrite orphans carrying ``old_level`` to ``new_level``.

    Only orphaned rows are touched; a row whose level is still valid is
    left alone even if it equals ``old_level``.

    Raises:
        InvalidLevelError: If ``new_level`` is not configured
    """
    if not catalog.is_valid_level(new_level):
        raise InvalidLevelError(level=new_level, valid_levels=catalog.levels())

    store = LevelStore(db, catalog)
    updated: list[int] = []
    skipped: list[int] = []

    with db.transaction():
        for orphan in find_orphans(db, catalog):
            if orphan.level != old_level:
                continue
            try:
                store.set_level(orphan.resource_id, new_level)
            except ResourceNotFoundError:
                skipped.append(orphan.resource_id)
                continue
            updated.append(orphan.resource_id)

    logger.info(
        "Replaced orphaned level %r with %r on %d resource(s)",
        old_level,
        new_level,
        len(updated),
    )
    return ReconcileResult(
        old_level=old_level,
        new_level=new_level,
        updated=updated,
        skipped=skipped,
    )
