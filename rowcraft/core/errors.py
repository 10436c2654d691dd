"""Error Hierarchy — typed, categorized exceptions for every rowcraft failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Construction errors are raised synchronously, before any IO happens
    - AdapterError always carries the SQL text that was attempted
    - Nothing in rowcraft retries or swallows these; they reach the immediate caller

Design Decisions:
    - Single hierarchy with RowcraftError base: callers can catch one type
    - ErrorContext as dataclass: diagnostics without coupling to the logging setup
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories."""
    CONSTRUCTION = "construction"
    ADAPTER = "adapter"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"


@dataclass
class ErrorContext:
    """Diagnostic context attached to an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    model: str | None = None
    association: str | None = None
    sql: str | None = None
    params: list[Any] | None = None
    debug_info: dict[str, Any] | None = None


class RowcraftError(Exception):
    """Base exception for all rowcraft errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        """Structured envelope for logs and API layers built on top."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "model": self.context.model,
                    "association": self.context.association,
                    "sql": self.context.sql,
                },
            }
        }


# ─── Caller Errors ──────────────────────────────────────────────

class ConstructionError(RowcraftError):
    """Malformed builder call or missing required association option."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONSTRUCTION_ERROR", ErrorCategory.CONSTRUCTION,
            ErrorSeverity.ERROR, context,
        )


class InvalidStateError(RowcraftError):
    """Operation not allowed in the record's current lifecycle state."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_STATE", ErrorCategory.INVALID_STATE,
            ErrorSeverity.ERROR, context,
        )


class RecordNotFoundError(RowcraftError):
    """Requested row does not exist."""
    def __init__(
        self, model: str, record_id: Any, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.model = model
        super().__init__(
            f"{model} with id {record_id!r} not found",
            "RECORD_NOT_FOUND", ErrorCategory.NOT_FOUND,
            ErrorSeverity.ERROR, ctx,
        )
        self.model = model
        self.record_id = record_id


# ─── Infrastructure Errors ──────────────────────────────────────

class AdapterError(RowcraftError):
    """A query, execute or transaction call failed inside the adapter."""
    def __init__(
        self,
        message: str,
        operation: str,
        sql: str | None = None,
        params: list[Any] | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.sql = sql
        ctx.params = params
        detail = f"Database {operation} failed: {message}"
        if sql:
            detail = f"{detail}\nSQL: {sql}"
        super().__init__(
            detail, "ADAPTER_ERROR", ErrorCategory.ADAPTER,
            ErrorSeverity.CRITICAL, ctx,
        )
        self.operation = operation
        self.sql = sql
        self.params = params
