"""Structured results returned across the alert engine boundary.

Lifecycle and monitor operations never raise to their callers; they return a
``ServiceResult`` carrying either data or a ``ServiceError`` with a code.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class AlertErrorCode(str, enum.Enum):
    """Failure kinds surfaced by the alert engine."""

    DUPLICATE_ALERT = "DUPLICATE_ALERT"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    MAX_ESCALATION_REACHED = "MAX_ESCALATION_REACHED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class AlertStoreError(Exception):
    """Raised by store and shift source adapters when the backend fails."""


@dataclass(frozen=True)
class ServiceError:
    """Why an operation failed."""

    code: AlertErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Success-with-data or failure-with-error."""

    success: bool
    data: T | None = None
    error: ServiceError | None = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        code: AlertErrorCode,
        message: str,
        **details: Any,
    ) -> "ServiceResult[T]":
        return cls(success=False, error=ServiceError(code, message, details))

    @property
    def error_code(self) -> AlertErrorCode | None:
        return self.error.code if self.error else None
