"""
Custom exceptions for the catalog reconciliation pipeline.
Provides structured error handling with rich context for the run report.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from enum import Enum


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors, one per pipeline stage."""
    VALIDATION = "validation"
    STAGING = "staging"
    IDENTITY = "identity"
    MERGE = "merge"
    FEED = "feed"
    STORE = "store"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Rich context for error tracking and debugging."""
    run_id: Optional[str] = None
    item_id: Optional[str] = None
    product_id: Optional[str] = None
    manufacturer_id: Optional[str] = None
    sku: Optional[str] = None
    field_name: Optional[str] = None
    actual_value: Optional[Any] = None
    source: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert context to dictionary for logging."""
        return {
            "run_id": self.run_id,
            "item_id": self.item_id,
            "product_id": self.product_id,
            "manufacturer_id": self.manufacturer_id,
            "sku": self.sku,
            "field_name": self.field_name,
            "actual_value": str(self.actual_value) if self.actual_value is not None else None,
            "source": self.source,
            "timestamp": self.timestamp,
            **self.additional_data,
        }


class IngestionError(Exception):
    """Base exception for all reconciliation pipeline errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.MERGE,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception

    def to_dict(self) -> dict:
        """Serialize exception for logging and the run report."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class RowValidationError(IngestionError):
    """Raised for a single feed column that fails validation."""

    def __init__(
        self,
        message: str,
        field_name: str,
        actual: Any,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.field_name = field_name
        ctx.actual_value = actual

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
        )
        self.field_name = field_name
        self.actual = actual


class StagingWriteError(IngestionError):
    """Raised when a normalized row cannot be written to staging."""

    def __init__(
        self,
        message: str,
        product_id: str,
        manufacturer_id: str,
        sku: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.product_id = product_id
        ctx.manufacturer_id = manufacturer_id
        ctx.sku = sku

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.STAGING,
            original_exception=original_exception,
        )


class IdentityResolutionError(IngestionError):
    """Raised when supplier keys cannot be resolved to canonical identities."""

    def __init__(
        self,
        message: str,
        manufacturer_id: str,
        product_id: Optional[str] = None,
        manufacturer_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.manufacturer_id = manufacturer_id
        ctx.product_id = product_id
        if manufacturer_name is not None:
            ctx.additional_data["manufacturer_name"] = manufacturer_name

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.IDENTITY,
            original_exception=original_exception,
        )


class MergeError(IngestionError):
    """Raised when merging into the canonical catalog fails.

    ``scope`` is ``"product"`` when the whole staging product is skipped and
    ``"variant"`` when only one variant is.
    """

    def __init__(
        self,
        message: str,
        internal_product_id: Optional[str],
        scope: str = "variant",
        sku: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.sku = sku
        ctx.additional_data["internal_product_id"] = internal_product_id
        ctx.additional_data["scope"] = scope

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.MERGE,
            original_exception=original_exception,
        )
        self.scope = scope


class FeedReadError(IngestionError):
    """Raised when the input feed cannot be read. Fatal for the run."""

    def __init__(
        self,
        message: str,
        source: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.source = source

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.FEED,
            original_exception=original_exception,
        )


class StoreError(IngestionError):
    """Raised when a document store call fails."""

    def __init__(
        self,
        message: str,
        store_name: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["store"] = store_name
        ctx.additional_data["operation"] = operation

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORE,
            retryable=True,
            original_exception=original_exception,
        )
        self.store_name = store_name
        self.operation = operation


class ConfigurationError(IngestionError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["config_key"] = config_key

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            original_exception=original_exception,
        )
        self.config_key = config_key
