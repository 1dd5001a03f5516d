"""
Error taxonomy shared by the catalog, rating and recommendation services.

Each class carries the HTTP status it maps to; main.py turns any of them into
a JSON `{"detail": ...}` response.
"""
from fastapi import status


class BookHavenError(Exception):
    """Base class for expected, user-facing failures."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(BookHavenError):
    """Malformed input (rating out of range, blank search query). Never retried."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookHavenError):
    """A referenced book or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BookHavenError):
    """Duplicate save, or a lost race on a unique key that could not be resolved."""
    status_code = status.HTTP_409_CONFLICT


class ExternalSourceError(BookHavenError):
    """
    The Open Library call failed, timed out or returned an unusable payload.

    The catalog layer recovers from this by serving local results; it only
    reaches a client if a caller forgets to.
    """
    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceError(BookHavenError):
    """The database rejected or could not complete a write. Fatal for the request."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
