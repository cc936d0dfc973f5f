"""
Typed outcomes for core operations.

Expected business failures (an invalid edge, an exhausted budget, a discussion
someone else already reviewed) are values, not exceptions: every core
operation returns a ``Result``. Exceptions are reserved for infrastructure
failures, which propagate to the caller untouched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RESOURCE = "resource"


class ErrorCode(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_TRANSITION = "InvalidTransition"
    REASON_REQUIRED = "ReasonRequired"
    INVALID_HOURS = "InvalidHours"
    PROJECT_NOT_ACTIVE = "ProjectNotActive"
    PROJECT_NOT_ACCEPTING_REQUESTS = "ProjectNotAcceptingRequests"
    PROJECT_REQUIRED = "ProjectRequired"
    INSUFFICIENT_BUDGET = "InsufficientBudget"
    NOT_ASSIGNED_ENGINEER = "NotAssignedEngineer"
    ALREADY_REVIEWED = "AlreadyReviewed"
    DISCUSSION_ALREADY_PENDING = "DiscussionAlreadyPending"
    STALE_STATE = "StaleState"
    INVALID_INPUT = "InvalidInput"


_CATEGORY_BY_CODE: Dict[ErrorCode, ErrorCategory] = {
    ErrorCode.NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorCode.INSUFFICIENT_BUDGET: ErrorCategory.RESOURCE,
    ErrorCode.PROJECT_NOT_ACTIVE: ErrorCategory.RESOURCE,
    ErrorCode.ALREADY_REVIEWED: ErrorCategory.CONFLICT,
    ErrorCode.DISCUSSION_ALREADY_PENDING: ErrorCategory.CONFLICT,
    ErrorCode.STALE_STATE: ErrorCategory.CONFLICT,
}


@dataclass(frozen=True)
class ServiceError:
    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY_BY_CODE.get(self.code, ErrorCategory.VALIDATION)


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a core operation: either ``value`` or ``error`` is set.
    """

    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, code: ErrorCode, message: str, **details: Any) -> "Result[T]":
        return cls(error=ServiceError(code=code, message=message, details=details))

    @classmethod
    def from_error(cls, error: ServiceError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def code(self) -> Optional[ErrorCode]:
        return self.error.code if self.error else None
