"""Typed failures raised by the transaction and chat services.

Each error carries the HTTP status it maps to, so the API layer can render
every failure through one exception handler.
"""


class BookVerseError(Exception):
    """Base exception for BookVerse domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookVerseError):
    """Book, session or message does not exist."""

    status_code = 404


class UnauthorizedError(BookVerseError):
    """Actor lacks the relationship the operation requires."""

    status_code = 403


class ConflictError(BookVerseError):
    """Attempted transition does not match the entity's current state."""

    status_code = 409


class LimitExceededError(BookVerseError):
    """Requester already holds the maximum number of active transactions."""

    status_code = 429


class ValidationError(BookVerseError):
    """Missing or malformed input."""

    status_code = 400
