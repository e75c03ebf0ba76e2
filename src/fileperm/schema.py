"""
Schema definitions for FilePerm.

This module defines the Pydantic models used throughout FilePerm:
- FilePermConfig: The immutable configuration snapshot
- ValidationResult: Outcome of validating raw administrator configuration
- AccessDecision: The result of an access check
- Resource/LevelChange/OrphanedLevel: Persistence and audit records

Design Decisions:
    - Configuration is frozen; a reload builds a new snapshot
    - Level is a plain, case-sensitive string
    - Denial reasons shown to users never name the required level
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from fileperm.errors import ConfigurationError

# A level is an opaque, case-sensitive identifier such as "public".
Level = str

# Grant token meaning "every currently configured level".
WILDCARD = "*"

# Shown to users on denial. Must not reveal the required level.
GENERIC_DENIAL = "Access denied"

# Levels used when the administrator configures none at all.
DEFAULT_LEVELS = ["public"]


# =============================================================================
# Enums
# =============================================================================


class AccessSurface(str, Enum):
    """
    The way a resource is being reached.

    Every surface receives the same decision for the same inputs.
    """

    PAGE_VIEW = "page_view"
    RAW_DOWNLOAD = "raw_download"
    THUMBNAIL = "thumbnail"
    EMBED = "embed"


# =============================================================================
# Configuration Models
# =============================================================================


class ValidationResult(BaseModel):
    """
    Outcome of validating raw administrator configuration.

    Attributes:
        valid: True when no check failed
        errors: Human-readable messages, one per failed check, in check order
        fail_closed: True when a structural check failed
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    valid: bool = Field(..., description="Whether the configuration passed all checks")
    errors: list[str] = Field(
        default_factory=list,
        description="Validation failures in check order",
    )
    fail_closed: bool = Field(
        default=False,
        description="Whether any failure was structural (deny all access)",
    )

    def raise_for_errors(self) -> None:
        """Raise ConfigurationError if validation failed (strict tooling only)."""
        if not self.valid:
            raise ConfigurationError(errors=list(self.errors))


class FilePermConfig(BaseModel):
    """
    Immutable configuration snapshot.

    Built once per process (or per explicit reload) from raw administrator
    input. Fields are already sanitized to their declared types; the
    ``invalid`` flag records whether validation failed, in which case every
    access decision denies.

    Attributes:
        levels: Configured levels, deduplicated, first occurrence wins
        group_grants: Group name to granted levels (may contain "*")
        default_level: Global fallback level, if any
        namespace_defaults: Namespace id to default level
        invalid: Fail-closed flag
        errors: Validation messages that set the flag
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    levels: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LEVELS),
        description="Configured permission levels",
    )
    group_grants: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Map of group name to granted levels",
    )
    default_level: str | None = Field(
        default=None,
        description="Global default level (None means explicit selection required)",
    )
    namespace_defaults: dict[int, str] = Field(
        default_factory=dict,
        description="Map of namespace id to default level",
    )
    invalid: bool = Field(
        default=False,
        description="True when validation failed; all access is denied",
    )
    errors: list[str] = Field(
        default_factory=list,
        description="Validation errors that set the invalid flag",
    )


# =============================================================================
# Runtime Models
# =============================================================================


class AccessDecision(BaseModel):
    """
    Result of checking access to a resource.

    ``reason`` is safe to show to the user. ``rule_matched`` is for
    operator logs only and may name the level involved.

    Attributes:
        allowed: Whether access is permitted
        reason: User-facing explanation
        rule_matched: Which rule produced the decision
        surface: The access surface that asked
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool = Field(..., description="Whether access is permitted")
    reason: str = Field(..., description="User-facing explanation")
    rule_matched: str | None = Field(
        default=None,
        description="Which rule caused this decision",
    )
    surface: AccessSurface | None = Field(
        default=None,
        description="The access surface that asked",
    )

    @classmethod
    def allow(
        cls,
        rule: str | None = None,
        surface: AccessSurface | None = None,
    ) -> "AccessDecision":
        """Create an ALLOW decision."""
        return cls(allowed=True, reason="Access granted", rule_matched=rule, surface=surface)

    @classmethod
    def deny(
        cls,
        rule: str | None = None,
        surface: AccessSurface | None = None,
    ) -> "AccessDecision":
        """Create a DENY decision with the generic user-facing reason."""
        return cls(allowed=False, reason=GENERIC_DENIAL, rule_matched=rule, surface=surface)


class Resource(BaseModel):
    """A resource registered with the store, identified by (namespace, key)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource_id: int = Field(..., description="Stable resource id", ge=1)
    namespace: int = Field(..., description="Namespace id")
    key: str = Field(..., description="Resource key within its namespace", min_length=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the resource was registered",
    )


class LevelChange(BaseModel):
    """
    A successful level assignment, handed to the audit collaborator.

    Attributes:
        actor: Who made the change
        resource_id: The resource whose level changed
        old_level: Level before the write (None if unclassified)
        new_level: Level after the write
        changed_at: When the write happened
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    actor: str = Field(..., description="Who made the change")
    resource_id: int = Field(..., description="The resource whose level changed")
    old_level: str | None = Field(default=None, description="Previous level")
    new_level: str = Field(..., description="New level")
    changed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the change happened",
    )


class OrphanedLevel(BaseModel):
    """A stored level that is no longer in the configured level set."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource_id: int = Field(..., description="Resource holding the orphaned level")
    namespace: int = Field(..., description="Namespace of the resource")
    key: str = Field(..., description="Key of the resource")
    level: str = Field(..., description="The orphaned level string")


class ReconcileResult(BaseModel):
    """Outcome of rewriting orphaned levels."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    old_level: str = Field(..., description="Orphaned level that was replaced")
    new_level: str = Field(..., description="Replacement level")
    updated: list[int] = Field(default_factory=list, description="Rewritten resource ids")
    skipped: list[int] = Field(default_factory=list, description="Resource ids that vanished")
