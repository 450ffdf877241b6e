"""
Service Results

Expected outcomes (bad password, duplicate email, missing member...) are
returned as values, not raised. The API layer decides which HTTP error a
failure becomes.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ServiceError(str, Enum):
    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class ServiceResult:
    success: bool
    value: Any = None
    error: Optional[ServiceError] = None
    message: Optional[str] = None


def ok(value: Any = None) -> ServiceResult:
    return ServiceResult(success=True, value=value)


def fail(error: ServiceError, message: str) -> ServiceResult:
    return ServiceResult(success=False, error=error, message=message)
