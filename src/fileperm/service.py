"""
Integration facade for FilePerm.

The Service is the layer hosts call from their request handlers. It
coordinates between:
- ConfigHolder: The live configuration snapshot
- FilePermDB/LevelStore: Persisted levels, with a fresh cache per call
- PermissionEvaluator: The access decision
- Audit sink: Told about every successful level change

Every access surface (page view, raw download, thumbnail, embed) goes
through check_access(), so all of them get the same decision.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from fileperm.config.holder import ConfigHolder
from fileperm.deferred import DeferredLevelQueue
from fileperm.errors import InvalidLevelError, LevelRequiredError
from fileperm.policy.engine import PermissionEvaluator
from fileperm.policy.levels import AccessPolicy
from fileperm.schema import AccessDecision, AccessSurface, Level, LevelChange
from fileperm.store.db import FilePermDB
from fileperm.store.level_store import LevelStore

logger = logging.getLogger(__name__)

# Host-supplied lookup of a user's effective groups.
GroupLookup = Callable[[Any], Iterable[str]]

# Receives every successful level change (e.g. an audit log publisher).
AuditSink = Callable[[LevelChange], None]


class FilePermService:
    """
    Entry point for hosts.

    Usage:
        service = FilePermService(ConfigHolder.from_file("fileperm.yaml"), db,
                                  group_lookup=lambda user: user.groups)
        decision = service.check_access(user, resource_id, namespace=6,
                                        surface=AccessSurface.RAW_DOWNLOAD)

    Attributes:
        holder: Live configuration
        db: Database with resources and their levels
        group_lookup: Maps a user to their groups
        audit: Optional sink for level changes
        deferred: Queue of level assignments awaiting a commit
    """

    def __init__(
        self,
        holder: ConfigHolder,
        db: FilePermDB,
        group_lookup: GroupLookup | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.holder = holder
        self.db = db
        self.group_lookup = group_lookup or _no_groups
        self.audit = audit
        self.deferred = DeferredLevelQueue()

    # =========================================================================
    # Per-request construction
    # =========================================================================

    def level_store(self, policy: AccessPolicy | None = None) -> LevelStore:
        """A fresh LevelStore with its own empty cache."""
        policy = policy or self.holder.policy
        return LevelStore(self.db, policy.catalog)

    def evaluator(self) -> PermissionEvaluator:
        """A fresh evaluator over the current snapshot."""
        policy = self.holder.policy
        return PermissionEvaluator(policy, self.level_store(policy))

    # =========================================================================
    # Access decisions
    # =========================================================================

    def check_access(
        self,
        user: Any,
        resource_id: int,
        namespace: int,
        surface: AccessSurface = AccessSurface.PAGE_VIEW,
    ) -> AccessDecision:
        """
        Decide whether a user may reach a resource through a surface.

        The user's groups are looked up lazily and not at all when the
        configuration is invalid.
        """
        decision = self.evaluator().decide(
            lambda: self.group_lookup(user),
            resource_id,
            namespace,
            surface=surface,
        )
        if not decision.allowed:
            logger.debug(
                "Denied %s on resource %s (%s)",
                surface.value,
                resource_id,
                decision.rule_matched,
            )
        return decision

    def can_access_level(self, user: Any, level: Level) -> bool:
        """Whether the user's groups grant a level."""
        return self.evaluator().can_access_level(lambda: self.group_lookup(user), level)

    def effective_level(self, resource_id: int, namespace: int) -> Level | None:
        """The level governing a resource, or None if unrestricted."""
        return self.evaluator().effective_level(resource_id, namespace)

    # =========================================================================
    # Level management
    # =========================================================================

    def get_level(self, resource_id: int) -> Level | None:
        """The explicit level of a resource."""
        return self.level_store().get_level(resource_id)

    def get_levels(self, resource_ids: Iterable[int]) -> dict[int, Level]:
        """Explicit levels of several resources; unclassified ones are omitted."""
        return self.db.fetch_levels(resource_ids)

    def set_level(self, actor: str, resource_id: int, level: Level) -> LevelChange:
        """
        Set the explicit level of a resource and report the change.

        Raises:
            ResourceNotFoundError: If the resource does not exist
            InvalidLevelError: If the level is not configured
            StorageError: If the write fails
        """
        store = self.level_store()
        old_level = store.get_level(resource_id)
        store.set_level(resource_id, level)

        change = LevelChange(
            actor=actor,
            resource_id=resource_id,
            old_level=old_level,
            new_level=level,
        )
        if self.audit is not None:
            self.audit(change)
        return change

    def remove_level(self, resource_id: int) -> None:
        """Remove the explicit level of a resource."""
        self.level_store().remove_level(resource_id)

    # =========================================================================
    # Uploads
    # =========================================================================

    def resolve_upload_level(
        self,
        requested: str | None,
        namespace: int,
        interactive: bool = True,
    ) -> Level | None:
        """
        Decide which level a new upload gets.

        Args:
            requested: Level chosen by the uploader ("" or None for none)
            namespace: Namespace the upload lands in
            interactive: Whether the uploader was shown a level selector

        Returns:
            The level to assign, or None for an unclassified upload

        Raises:
            InvalidLevelError: If the requested level is not configured
            LevelRequiredError: If nothing was chosen, no default applies
                and the uploader could have chosen
        """
        catalog = self.holder.policy.catalog
        if requested:
            if not catalog.is_valid_level(requested):
                raise InvalidLevelError(level=requested, valid_levels=catalog.levels())
            return requested

        default = self.holder.policy.defaults.resolve_default(namespace)
        if default is not None:
            return default
        if interactive:
            raise LevelRequiredError(valid_levels=catalog.levels())
        return None

    def assign_on_create(self, namespace: int, key: str, level: Level | None) -> None:
        """
        Assign a level to a resource being created in the current transaction.

        The write happens after the enclosing transaction commits (or
        immediately if none is open) and is discarded if the transaction
        rolls back. Failures are logged, never raised.
        """
        if level is None or not self.holder.policy.catalog.is_valid_level(level):
            return
        self.deferred.submit(self.db, namespace, key, level, self.level_store)

    def level_options(self) -> list[tuple[Level, list[str]]]:
        """Each level with the groups that grant it, for level selectors."""
        level_groups = self.holder.policy.grants.level_group_map()
        return [(level, level_groups.get(level, [])) for level in self.holder.policy.catalog.levels()]


def _no_groups(user: Any) -> list[str]:
    return []
