"""
Error taxonomy for the school portal API.

Every failure a handler can produce is one of these; ``main`` registers a
single exception handler that renders them as ``{"message": ..., "code": ...}``.
"""

from typing import Optional


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class InvalidProductKey(ValidationError):
    code = "INVALID_PRODUCT_KEY"
    message = "Invalid product key"


class AuthError(AppError):
    status_code = 401
    code = "AUTH_ERROR"
    message = "Not authenticated"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class IncorrectOldPassword(AuthError):
    code = "INCORRECT_OLD_PASSWORD"
    message = "Old password incorrect"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class TokenMalformed(AuthError):
    code = "TOKEN_INVALID"
    message = "Invalid token"


class TokenMissing(AuthError):
    status_code = 403
    code = "TOKEN_MISSING"
    message = "No token provided"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Unauthorized"


class AlreadyInstalled(Forbidden):
    code = "ALREADY_INSTALLED"
    message = "System already installed"


class LicenseDenied(Forbidden):
    code = "LICENSE_DENIED"
    message = "License check failed"


class NotFoundEntity(AppError):
    status_code = 404
    code = "ENTITY_NOT_FOUND"
    message = "Entity not found"


class NotFoundRecord(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class DuplicateKeyError(AppError):
    status_code = 409
    code = "DUPLICATE_KEY"
    message = "Record already exists"


class InternalError(AppError):
    pass
