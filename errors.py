"""
Error taxonomy for the API.

Every error is an HTTPException so route code raises them exactly like
FastAPI's own exceptions; main.py renders them into the response envelope.
"""
from typing import Dict, List, Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    code = "INTERNAL"
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None,
                 headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail, headers=headers)
        self.errors = errors


class Unauthenticated(ApiError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_detail = "Authentication required"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredential(Unauthenticated):
    code = "INVALID_CREDENTIAL"
    default_detail = "Invalid or expired token"


class UserRecordMissing(Unauthenticated):
    code = "USER_RECORD_MISSING"
    default_detail = "User not found in database"


class Forbidden(ApiError):
    status_code = 403
    code = "FORBIDDEN"
    default_detail = "Access denied"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_detail = "Resource not found"


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_detail = "Validation error"


class Conflict(ApiError):
    status_code = 409
    code = "CONFLICT"
    default_detail = "Conflicting state"


class AttemptsExhausted(ApiError):
    status_code = 400
    code = "ATTEMPTS_EXHAUSTED"
    default_detail = "Maximum attempts reached"


class UnsupportedMediaError(ApiError):
    status_code = 400
    code = "UNSUPPORTED_MEDIA"
    default_detail = "File type is not allowed"


class Internal(ApiError):
    pass
