"""Exceptions raised by booru clients."""

from __future__ import annotations


class BooruClientError(Exception):
    """Base exception for booru client errors."""


class BooruTransportError(BooruClientError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class BooruHTTPError(BooruClientError):
    """The server answered with a non-200 status."""

    def __init__(
        self, message: str, *, status_code: int, server_message: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class BooruConfigurationError(BooruClientError):
    """Credentials or settings are unusable; retrying will not help."""
