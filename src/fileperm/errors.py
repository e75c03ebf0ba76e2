"""
Exception hierarchy for FilePerm.

All FilePerm exceptions inherit from FilePermError, allowing callers to catch
all FilePerm-specific exceptions with a single except clause.

Exception Categories:
    - ConfigurationError: Administrator configuration failed validation
    - InvalidLevelError: A level string outside the configured set was written
    - ResourceNotFoundError: The target resource has no stable identity yet
    - StorageError: Database operation failed

Propagation:
    - Configuration errors never reach request paths; they surface as the
      fail-closed flag on the configuration snapshot plus log records.
    - InvalidLevelError and ResourceNotFoundError propagate to the caller
      immediately. Their messages are safe to show to the acting user.
    - StorageError propagates on synchronous writes and is logged and dropped
      on deferred writes.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONFIG_INVALID = 1001
ERROR_CONFIG_UNREADABLE = 1002

# Level assignment errors: 2xxx
ERROR_LEVEL_INVALID = 2001
ERROR_RESOURCE_NOT_FOUND = 2002
ERROR_LEVEL_REQUIRED = 2003

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class FilePermError(Exception):
    """
    Base exception for all FilePerm errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigurationError(FilePermError):
    """
    Raised when administrator configuration is structurally invalid.

    Only strict tooling raises this (see ValidationResult.raise_for_errors).
    The runtime absorbs validation failures into the fail-closed flag.

    Attributes:
        errors: Every validation failure, in check order
    """

    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            count = len(self.errors)
            self.message = f"Invalid configuration: {count} error(s)"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        if not self.suggestion:
            self.suggestion = "Fix the listed entries; all access is denied until then"
        self.context["errors"] = list(self.errors)


# =============================================================================
# Level Assignment Errors
# =============================================================================


@dataclass
class InvalidLevelError(FilePermError):
    """Raised when a level outside the configured set is written."""

    level: str = ""
    valid_levels: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Invalid permission level: {self.level}. "
                f"Valid levels: {', '.join(self.valid_levels)}"
            )
        if self.code == 0:
            self.code = ERROR_LEVEL_INVALID
        self.context.update({
            "level": self.level,
            "valid_levels": list(self.valid_levels),
        })


@dataclass
class LevelRequiredError(InvalidLevelError):
    """Raised when a level must be chosen explicitly and none was given."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "A permission level must be selected"
        if self.code == 0:
            self.code = ERROR_LEVEL_REQUIRED
        super().__post_init__()


@dataclass
class ResourceNotFoundError(FilePermError):
    """
    Raised when a level is set on a resource that does not exist.

    Attributes:
        resource_id: The resource id that was looked up (if known)
        namespace: Namespace of the resource (if looked up by name)
        key: Key of the resource within its namespace (if looked up by name)
    """

    resource_id: int | None = None
    namespace: int | None = None
    key: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            if self.resource_id is not None:
                target = f"resource {self.resource_id}"
            else:
                target = f"resource {self.namespace}:{self.key}"
            self.message = f"Cannot set permission level: {target} does not exist"
        if self.code == 0:
            self.code = ERROR_RESOURCE_NOT_FOUND
        self.context.update({
            "resource_id": self.resource_id,
            "namespace": self.namespace,
            "key": self.key,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(FilePermError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "upsert_level")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
