"""
Migration-specific exceptions.

Exception Hierarchy:
    MigrationError (base)
    +-- MigrationNotFoundError
    +-- InvalidMigrationStateError
    +-- UnknownEntityTypeError
    +-- UnknownTransformError
    +-- TargetIndexConflictError
    +-- StoreMigrationError
    +-- MigrationFailedError

Every exception carries a machine-readable ``error_code`` plus the context
needed to decide what to do next (migration id, entity type, cursor).
Transient remote errors never surface as MigrationError: they are absorbed
by the retry wrapper, and only re-raised once its attempts are exhausted.
"""

from __future__ import annotations

from typing import Any

from intelstore.exceptions import IntelStoreError


class MigrationError(IntelStoreError):
    """
    Base exception for all migration-related errors.

    Attributes:
        message: Human-readable error description.
        migration_id: The migration run involved, if applicable.
        entity_type: The entity type involved, if applicable.
        recoverable: Whether relaunching the migration can recover.
        suggested_action: Guidance for operators.
    """

    error_code: str = "MIGRATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        migration_id: str | None = None,
        entity_type: str | None = None,
        recoverable: bool = False,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.migration_id = migration_id
        self.entity_type = entity_type
        self.recoverable = recoverable
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.migration_id:
            parts.append(f"migration_id={self.migration_id}")
        if self.entity_type:
            parts.append(f"entity_type={self.entity_type}")
        if self.recoverable:
            parts.append("(recoverable)")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "migration_id": self.migration_id,
            "entity_type": self.entity_type,
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
        }


class MigrationNotFoundError(MigrationError):
    """
    Raised when a requested migration run does not exist.

    Not-found is structural, so it is reported immediately and never retried.
    """

    error_code = "MIGRATION_NOT_FOUND"

    def __init__(self, migration_id: str) -> None:
        super().__init__(
            message=f"Migration not found: {migration_id}",
            migration_id=migration_id,
            suggested_action="Verify the migration id, or run init with --confirm first",
        )


class InvalidMigrationStateError(MigrationError):
    """
    Raised when a persisted migration document fails validation.

    Attributes:
        details: Validation error details.
    """

    error_code = "INVALID_MIGRATION_STATE"

    def __init__(self, migration_id: str, details: str) -> None:
        self.details = details
        super().__init__(
            message=f"Invalid migration state: {details}",
            migration_id=migration_id,
            suggested_action="Inspect the migration document; it does not match the schema",
        )


class UnknownEntityTypeError(MigrationError):
    """Raised when an entity type is not part of the migration run."""

    error_code = "UNKNOWN_ENTITY_TYPE"

    def __init__(self, migration_id: str, entity_type: str) -> None:
        super().__init__(
            message=f"Entity type {entity_type!r} is not part of this migration",
            migration_id=migration_id,
            entity_type=entity_type,
        )


class UnknownTransformError(MigrationError):
    """Raised when a configured document transform name is not registered."""

    error_code = "UNKNOWN_TRANSFORM"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(message=f"Unknown document transform: {name}")


class TargetIndexConflictError(MigrationError):
    """
    Raised when a target index name equals its source index name.

    Creating the target recreates the index, so the run is refused before
    anything is written.
    """

    error_code = "TARGET_INDEX_CONFLICT"

    def __init__(self, migration_id: str, entity_type: str, index: str) -> None:
        self.index = index
        super().__init__(
            message=f"Target index {index} is the source index of {entity_type}",
            migration_id=migration_id,
            entity_type=entity_type,
            suggested_action="Choose a prefix different from the current generation of the index",
        )


class StoreMigrationError(MigrationError):
    """
    Raised when migrating one entity type fails.

    The batch loop of that entity type halts; the last durably persisted
    cursor remains the resumption point.

    Attributes:
        search_after: Last persisted cursor of the entity type.
        migrated: Documents migrated as of that cursor.
        step: The step that failed (e.g., "copy", "reconcile_deletes", "finalize").
        original_error: The underlying error message.
    """

    error_code = "STORE_MIGRATION_ERROR"

    def __init__(
        self,
        migration_id: str,
        entity_type: str,
        *,
        step: str,
        search_after: list[Any] | None,
        migrated: int,
        error: str,
    ) -> None:
        self.step = step
        self.search_after = search_after
        self.migrated = migrated
        self.original_error = error
        super().__init__(
            message=(
                f"Migration of {entity_type} failed during {step} "
                f"after {migrated} documents (cursor={search_after}): {error}"
            ),
            migration_id=migration_id,
            entity_type=entity_type,
            recoverable=True,
            suggested_action="Relaunch the migration to resume from the last checkpoint",
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            step=self.step,
            search_after=self.search_after,
            migrated=self.migrated,
            original_error=self.original_error,
        )
        return result


class MigrationFailedError(MigrationError):
    """
    Raised when one or more entity types of a run failed.

    Attributes:
        failures: The per entity type errors.
    """

    error_code = "MIGRATION_FAILED"

    def __init__(self, migration_id: str, failures: list[StoreMigrationError]) -> None:
        self.failures = failures
        failed = ", ".join(sorted(f.entity_type or "?" for f in failures))
        super().__init__(
            message=f"Migration failed for entity types: {failed}",
            migration_id=migration_id,
            recoverable=True,
            suggested_action="Relaunch the migration to resume failed entity types",
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failures"] = [f.to_dict() for f in self.failures]
        return result


__all__ = [
    "InvalidMigrationStateError",
    "MigrationError",
    "MigrationFailedError",
    "MigrationNotFoundError",
    "StoreMigrationError",
    "TargetIndexConflictError",
    "UnknownEntityTypeError",
    "UnknownTransformError",
]
