"""
Error types raised by the store components.

Handlers in main.py turn these into JSON responses; components never build
HTTP responses themselves.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class Unauthenticated(AppError):
    status_code = 401


class InvalidCredential(Unauthenticated):
    pass


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class StoreError(AppError):
    status_code = 500
