"""
Custom exception hierarchy for commit-search.

All exceptions inherit from CommitSearchError for easy catching.
Each exception type maps to one failure category: the repository
data source, the index engine, a single malformed record, or bad input.
"""

from __future__ import annotations


class CommitSearchError(Exception):
    """Base exception for all commit-search errors.

    All custom exceptions should inherit from this class.
    Provides a consistent interface for error handling.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to structured error response dict."""
        return {
            "error": True,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details if self.details else None,
        }


class RepositoryError(CommitSearchError):
    """Git repository operation failed.

    Raised when:
    - Not a git repository, or clone fails
    - HEAD cannot be resolved
    - A commit or one of its parents cannot be looked up
    - Branches cannot be enumerated

    Always fatal to the running operation.
    """
    pass


class IndexEngineError(CommitSearchError):
    """Index storage operation failed.

    Raised when:
    - The index cannot be opened or created
    - A write batch cannot be submitted
    - A query is rejected by the engine
    """
    pass


class MalformedRecordError(CommitSearchError):
    """A single commit record could not be converted.

    Raised when:
    - A commit cannot be serialised into a record
    - A stored field map is missing a field or holds the wrong type

    Callers treat this as a per-record failure and continue.
    """
    pass


class ValidationError(CommitSearchError):
    """Input validation failed.

    Raised when:
    - Empty or overly long query
    - Non-numeric minimum score
    - Invalid id prefix or branch filter
    """
    pass


def format_error(error: Exception) -> dict:
    """Format any exception as a structured error response.

    Args:
        error: Any exception (CommitSearchError or built-in)

    Returns:
        Structured error dict
    """
    if isinstance(error, CommitSearchError):
        return error.to_dict()

    error_type = error.__class__.__name__
    message = str(error) or f"An error of type {error_type} occurred"

    return {
        "error": True,
        "error_type": error_type,
        "message": message,
        "details": None,
    }
