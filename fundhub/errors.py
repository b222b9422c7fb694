"""
Application error taxonomy.

Every error raised on purpose by services and dependencies carries an
``ErrorKind``; ``STATUS_BY_KIND`` maps the kind to the HTTP status code used
by the exception handlers registered in ``fundhub.main``.
"""
from __future__ import annotations

import enum
from typing import Dict, Optional

from fastapi import status


class ErrorKind(str, enum.Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNEXPECTED = "unexpected"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.UNEXPECTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(Exception):
    """Base class for errors that are reported to API callers."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> Dict[str, str]:
        body = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return body


class AuthenticationError(AppError):
    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(AppError):
    kind = ErrorKind.AUTHORIZATION


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT


class DuplicateDocumentError(ConflictError):
    code = "DUPLICATE_DOCUMENT"


class UnexpectedError(AppError):
    kind = ErrorKind.UNEXPECTED
