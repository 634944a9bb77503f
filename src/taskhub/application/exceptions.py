from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class ServiceUnavailableError(AppError):
    pass


class EventParseError(AppError):
    """Inbound payload could not be read as a structured envelope."""


class PayloadSerializationError(AppError):
    """Outbound payload could not be turned into a wire string."""
