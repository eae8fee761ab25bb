"""Closed error taxonomy surfaced by ContentResourceService."""

from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class ContentResourceError(Exception):
    """The only exception type the service lets escape.

    Attributes:
        code: Stable error kind.
        message: Human-readable description.
    """

    def __init__(self, message: str, code: ErrorCode) -> None:
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)

    def __repr__(self) -> str:
        return f"ContentResourceError(code={self.code.value!r}, message={self.message!r})"


def describe(error: BaseException) -> str:
    """Return the message of *error*, falling back to its class name."""
    return str(error) or type(error).__name__
