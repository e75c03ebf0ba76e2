"""
Policy module for FilePerm.

This module implements the authorization model: a resource carries at
most one level, groups are granted levels, and a user may access a
resource if any of their groups grants its effective level.

Key concepts:
    - LevelCatalog: The configured levels and strict membership
    - GrantResolver: Which groups grant which levels (``*`` grants all)
    - DefaultResolver: Namespace default, then global default
    - PermissionEvaluator: The access decision every surface calls

The evaluator must be:
    - Fail-closed: An invalid configuration denies every level check
    - Predictable: Same inputs always produce same decisions
"""

from fileperm.policy.engine import PermissionEvaluator
from fileperm.policy.levels import AccessPolicy, DefaultResolver, GrantResolver, LevelCatalog

__all__ = [
    "AccessPolicy",
    "DefaultResolver",
    "GrantResolver",
    "LevelCatalog",
    "PermissionEvaluator",
]
