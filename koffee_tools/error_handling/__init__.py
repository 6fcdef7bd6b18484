"""
Error handling for the Firestore migrations.

Usage:
    from koffee_tools.error_handling import BatchCommitError, CredentialError

    try:
        writer.commit()
    except BatchCommitError as exc:
        logger.error("Commit failed: %s", exc.cause)
"""

from .errors import (
    BatchCapacityError,
    BatchCommitError,
    CollectionReadError,
    CredentialError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    MigrationError,
)

__all__ = [
    "BatchCapacityError",
    "BatchCommitError",
    "CollectionReadError",
    "CredentialError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "MigrationError",
]
