"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class _CategoryError(DomainError):
    """Error category with a fixed HTTP status."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(code=code, http_status=self.status_code, message=message, details=details)


class AuthenticationFailure(_CategoryError):
    """Bad credential, expired/invalid token, inactive account or tenant."""

    status_code = 401


class AuthorizationFailure(_CategoryError):
    """Role or tenant mismatch."""

    status_code = 403


class ValidationFailure(_CategoryError):
    """Malformed/missing fields or quantity out of bounds."""

    status_code = 400


class NotFound(_CategoryError):
    status_code = 404


class InvalidState(_CategoryError):
    """Operation illegal for the resource's current status."""

    status_code = 400


class Conflict(_CategoryError):
    """Unique-constraint collision in the store."""

    status_code = 409


class RateLimited(_CategoryError):
    status_code = 429


class InternalFailure(_CategoryError):
    status_code = 500
