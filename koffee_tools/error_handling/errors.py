"""
Custom exception classes for the Firestore migrations.

Provides a small hierarchy of exceptions for the failure modes a migration
run can hit, so scripts can decide between skip-and-continue and abort.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(str, Enum):
    """Severity levels for migration errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of migration errors."""
    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    CONFIGURATION = "configuration"
    DATA = "data"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    migration: Optional[str] = None
    collection: Optional[str] = None
    document_id: Optional[str] = None
    page: Optional[int] = None
    additional: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "migration": self.migration,
            "collection": self.collection,
            "document_id": self.document_id,
            "page": self.page,
            "additional": self.additional,
        }


class MigrationError(Exception):
    """
    Base exception for all migration errors.

    Carries structured information for logging; see
    :class:`koffee_tools.logging_config.JsonLogFormatter`.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_json(self) -> str:
        """Serialize error to JSON string."""
        return json.dumps(self.to_dict(), indent=2)


class CredentialError(MigrationError):
    """Service account could not be loaded or the SDK failed to initialize."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        if path is not None:
            context.additional["path"] = path
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            context=context,
            **kwargs,
        )
        self.path = path


class CollectionReadError(MigrationError):
    """Reading a page (or a whole collection) from Firestore failed."""

    def __init__(self, message: str, collection: str, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.collection = collection
        super().__init__(
            message,
            category=ErrorCategory.EXTERNAL_SERVICE,
            context=context,
            **kwargs,
        )


class BatchCommitError(MigrationError):
    """An atomic write batch was rejected; none of its writes were applied."""

    def __init__(self, message: str, operation_count: int, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["operation_count"] = operation_count
        super().__init__(
            message,
            category=ErrorCategory.EXTERNAL_SERVICE,
            context=context,
            **kwargs,
        )
        self.operation_count = operation_count


class BatchCapacityError(MigrationError):
    """A write was staged into a batch that is already full."""

    def __init__(self, message: str, capacity: int, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["capacity"] = capacity
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            context=context,
            **kwargs,
        )
        self.capacity = capacity
