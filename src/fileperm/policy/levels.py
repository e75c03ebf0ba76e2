"""
Level catalog and grant/default resolution.

Everything here is a pure function of one immutable FilePermConfig, so an
AccessPolicy built from a snapshot can be shared by any number of
concurrent evaluators without locking.
"""

from functools import cached_property

from fileperm.schema import WILDCARD, FilePermConfig, Level


class LevelCatalog:
    """
    The ordered set of valid levels.

    Membership is exact and case-sensitive: "Public" is not "public", and
    the empty string is never a level.
    """

    def __init__(self, config: FilePermConfig) -> None:
        self._levels = list(dict.fromkeys(config.levels))
        self._lookup = frozenset(self._levels)

    def levels(self) -> list[Level]:
        """Configured levels, deduplicated, first occurrence order."""
        return list(self._levels)

    def is_valid_level(self, level: object) -> bool:
        """Strict membership test, no coercion."""
        return isinstance(level, str) and level in self._lookup

    def __contains__(self, level: object) -> bool:
        return self.is_valid_level(level)

    def __len__(self) -> int:
        return len(self._levels)


class GrantResolver:
    """
    Answers which groups grant which levels.

    A grant containing ``*`` covers every level in the catalog. The
    wildcard is expanded on lookup, never stored expanded.
    """

    def __init__(self, config: FilePermConfig, catalog: LevelCatalog) -> None:
        self._grants = {group: frozenset(levels) for group, levels in config.group_grants.items()}
        self._catalog = catalog

    def group_grants_level(self, group: str, level: Level) -> bool:
        """True if the group's grant set contains ``*`` or the exact level."""
        grants = self._grants.get(group)
        if not grants:
            return False
        return WILDCARD in grants or level in grants

    @cached_property
    def _level_group_map(self) -> dict[Level, tuple[str, ...]]:
        mapping: dict[Level, tuple[str, ...]] = {}
        for level in self._catalog.levels():
            mapping[level] = tuple(
                group for group in self._grants if self.group_grants_level(group, level)
            )
        return mapping

    def level_group_map(self) -> dict[Level, list[str]]:
        """
        Reverse map of level to the groups granting it.

        Groups appear in configuration order. Computed once per snapshot.
        """
        return {level: list(groups) for level, groups in self._level_group_map.items()}


class DefaultResolver:
    """Resolves the default level for a namespace."""

    def __init__(self, config: FilePermConfig, catalog: LevelCatalog) -> None:
        self._namespace_defaults = dict(config.namespace_defaults)
        self._global_default = config.default_level
        self._catalog = catalog

    def resolve_default(self, namespace: int) -> Level | None:
        """
        Resolve the default level for a namespace.

        Resolution order:
            1. Namespace-specific default (if valid)
            2. Global default (if valid)
            3. None (explicit selection required)

        An invalid namespace default is skipped rather than failing, so one
        bad entry does not break defaults everywhere else.
        """
        level = self._namespace_defaults.get(namespace)
        if level is not None and self._catalog.is_valid_level(level):
            return level

        if self._global_default is not None and self._catalog.is_valid_level(self._global_default):
            return self._global_default

        return None


class AccessPolicy:
    """
    Read-only bundle of a configuration snapshot and its resolvers.

    Build one per snapshot and share it. Attributes:
        config: The snapshot
        catalog: LevelCatalog over the snapshot
        grants: GrantResolver over the snapshot
        defaults: DefaultResolver over the snapshot
    """

    def __init__(self, config: FilePermConfig) -> None:
        self.config = config
        self.catalog = LevelCatalog(config)
        self.grants = GrantResolver(config, self.catalog)
        self.defaults = DefaultResolver(config, self.catalog)

    @property
    def invalid(self) -> bool:
        """Fail-closed flag of the snapshot."""
        return self.config.invalid
