# simflow/core/deps.py
from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException

from simflow.core.results import ErrorCategory, ErrorCode, Result

T = TypeVar("T")


def status_for(result: Result) -> int:
    err = result.error
    if err.code == ErrorCode.NOT_FOUND:
        return 404
    if err.category == ErrorCategory.CONFLICT:
        return 409
    return 400


def unwrap(result: Result[T]) -> T:
    """
    Return the value of a successful Result, or raise the HTTPException its
    error maps to: NotFound 404, conflicts 409, everything else 400.
    """
    if result.is_success:
        return result.value

    err = result.error
    raise HTTPException(
        status_code=status_for(result),
        detail={"code": err.code.value, "message": err.message, "details": err.details},
    )
