"""
Permission Evaluator for FilePerm.

The evaluator is the single decision point for every access surface
(page view, raw download, thumbnail, embedded rendering). Each surface
asks the same question and gets the same answer.

Design Principles:
    - Fail-closed: an invalid configuration denies every level check
      before group membership or grants are looked at
    - Predictable: same snapshot, stored level and groups give the same
      decision
    - Quiet: denial reasons never name the level a resource requires

Effective level:
    1. Explicit level stored for the resource
    2. Namespace default, then global default (DefaultResolver)
    3. None, meaning the resource is unrestricted
"""

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from fileperm.policy.levels import AccessPolicy
from fileperm.schema import AccessDecision, AccessSurface, Level

if TYPE_CHECKING:
    from fileperm.store.level_store import LevelStore

# Groups may be passed directly or as a zero-argument lookup. A lookup is
# only called once the snapshot is known to be valid. A single group name
# string counts as one group.
GroupSource = Iterable[str] | Callable[[], Iterable[str]]


class PermissionEvaluator:
    """
    Central access evaluator.

    Build one per request together with a fresh LevelStore; the
    AccessPolicy can be shared.

    Usage:
        evaluator = PermissionEvaluator(policy, LevelStore(db, policy.catalog))
        if evaluator.can_access_resource(["staff"], resource_id, namespace=6):
            ...

    Attributes:
        policy: Snapshot and resolvers
        store: Per-request level store
    """

    def __init__(self, policy: AccessPolicy, store: "LevelStore") -> None:
        self.policy = policy
        self.store = store

    def can_access_level(self, groups: GroupSource, level: Level) -> bool:
        """
        Check whether any of the groups grants the level.

        Returns False without resolving groups when the snapshot is invalid.
        """
        if self.policy.invalid:
            return False

        for group in _resolve_groups(groups):
            if self.policy.grants.group_grants_level(group, level):
                return True
        return False

    def effective_level(self, resource_id: int, namespace: int) -> Level | None:
        """The level that governs access: explicit, else default, else None."""
        level = self.store.get_level(resource_id)
        if level is None:
            level = self.policy.defaults.resolve_default(namespace)
        return level

    def can_access_resource(
        self,
        groups: GroupSource,
        resource_id: int,
        namespace: int,
    ) -> bool:
        """Check whether the groups may access a resource."""
        return self.decide(groups, resource_id, namespace).allowed

    def decide(
        self,
        groups: GroupSource,
        resource_id: int,
        namespace: int,
        surface: AccessSurface | None = None,
    ) -> AccessDecision:
        """
        Evaluate access to a resource and explain the outcome.

        An unclassified resource (no effective level) is unrestricted and
        allowed for everyone, including users without groups.
        """
        level = self.effective_level(resource_id, namespace)
        if level is None:
            return AccessDecision.allow(rule="unrestricted", surface=surface)

        if self.policy.invalid:
            return AccessDecision.deny(rule="invalid_config", surface=surface)

        if self.can_access_level(groups, level):
            return AccessDecision.allow(rule=f"grant[{level}]", surface=surface)

        return AccessDecision.deny(rule=f"no_grant[{level}]", surface=surface)


def _resolve_groups(groups: GroupSource) -> Iterable[str]:
    if callable(groups):
        groups = groups()
    if isinstance(groups, str):
        return (groups,)
    return groups
