from __future__ import annotations

from typing import Sequence


class DomainError(Exception):
    """Base for all errors raised by the task domain and its adapters."""


class ValidationError(DomainError):
    def __init__(self, message: str, details: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details)


class NotFoundError(DomainError):
    pass


class TransientNetworkError(DomainError):
    """Timeout, connection failure or server-side 5xx. Recovered by the next cycle."""


class RemoteRequestError(DomainError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class NotificationError(DomainError):
    pass
