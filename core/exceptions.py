"""
Custom exceptions for the import session engine.

Input errors carry enough detail for the caller to correct the request;
they are raised before any session state is written.
"""
from typing import Any, Dict, Optional


class ImportEngineException(Exception):
    """Base exception for all import engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ImportEngineException):
    """Raised when configuration is invalid."""
    pass


class MalformedInputError(ImportEngineException):
    """Raised when uploaded CSV text cannot be used (no header or data rows)."""
    pass


class FileTooLargeError(ImportEngineException):
    """Raised when an upload exceeds the configured size cap."""
    pass


class MappingError(ImportEngineException):
    """Raised when a column mapping is missing required fields."""
    pass


class SessionNotFoundError(ImportEngineException):
    """Raised when no session with the given id is owned by the user."""
    pass


class NoActiveSessionError(ImportEngineException):
    """Raised when the user has no non-terminal session."""
    pass


class RowNotFoundError(ImportEngineException):
    """Raised when a row index is not present in the parsed rows."""
    pass


class NoCsvDataError(ImportEngineException):
    """Raised when an operation needs uploaded CSV data that is not there yet."""
    pass


class NoParsedRowsError(ImportEngineException):
    """Raised when an operation needs parsed rows but mapping was never saved."""
    pass


class SessionNotActiveError(ImportEngineException):
    """Raised when an operation is invalid for the session's current status."""
    pass


class NoValidRowsError(ImportEngineException):
    """Raised when confirm finds nothing to import."""
    pass


class ImportCommitError(ImportEngineException):
    """Raised when the commit transaction fails and is rolled back."""
    pass
