from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ValidationError(AppError):
    pass


class AuthenticationError(AppError):
    pass


class PersistenceError(AppError):
    """The message store could not complete a write."""


class UnknownUserError(AuthenticationError):
    """The token is valid but its subject no longer exists."""
