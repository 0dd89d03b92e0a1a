"""Error types shared across the broker."""

from __future__ import annotations


class GossipGetNotFound(LookupError):
    """A peer processed the request but did not find the requested information."""

    def __init__(self, message: str = "Information not found") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class HttpError(Exception):
    """An error carrying an HTTP status code and a user-friendly message."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        return self.message


class ProducingError(Exception):
    """An error while producing, noting whether a write was attempted."""

    def __init__(self, message: str, was_write_attempted: bool) -> None:
        super().__init__(message)
        self.message = message
        self.was_write_attempted = was_write_attempted

    def __str__(self) -> str:
        return self.message


def new_no_write_attempted_error(message: str, *args: object) -> ProducingError:
    """Create a producing error for which no write was attempted."""
    text = message % args if args else message
    return ProducingError(text, was_write_attempted=False)