"""Centralized error handling module."""

from enum import Enum
from typing import Any, Dict, Optional

from vemail.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    STORAGE = "storage"
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


## Custom Exceptions


class VemailError(Exception):
    """Base exception for all Vemail errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise VemailError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Network Errors


class NetworkError(VemailError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    user_message = "Network error - could not reach email service"


class NetworkTimeoutError(NetworkError):
    """Exception for network timeout errors."""

    user_message = "The connection timed out"


class RemoteServiceError(NetworkError):
    """Exception for non-2xx responses or ``success: false`` payloads."""

    user_message = "The email service rejected the request"

    def __init__(
        self,
        message: str | None = None,
        details: Dict[str, Any] | None = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


## Storage Errors


class StorageError(VemailError):
    """Base exception for local account cache errors."""

    category = ErrorCategory.STORAGE
    user_message = "Failed to save account settings"


class CacheCorruptedError(StorageError):
    """Exception for unreadable persisted account data."""

    user_message = "Stored account data is corrupted"


## Validation Errors


class ValidationError(VemailError):
    """Base exception for validation-related errors."""

    category = ErrorCategory.VALIDATION
    user_message = "Invalid input"


class InvalidFolderError(ValidationError):
    """Exception for unknown mailbox folder names."""

    user_message = "Invalid email folder specified"


class MissingRequiredFieldError(ValidationError):
    """Exception for missing required fields."""

    user_message = "A required field is missing"


## File System Errors


class FileSystemError(VemailError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


## Configuration Errors


class ConfigurationError(VemailError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, VemailError):
            _get_logger().error(f"{context}: {error.message}", extra=error.details)
            if log_traceback:
                _get_logger().exception(error)
            return error.to_dict()
        else:
            _get_logger().error(f"{context}: {str(error)}")
            if log_traceback:
                _get_logger().exception(error)
            return {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "message": str(error),
                "details": {"context": context},
            }


## Context Manager for Error Handling


class error_context:
    """Context manager for error handling."""

    def __init__(
        self,
        context: str = "",
        user_message: Optional[str] = None,
        reraise: bool = True,
    ):
        """Initialise error context manager."""

        self.context = context
        self.user_message = user_message
        self.reraise = reraise
        self.error = None

    def __enter__(self):
        """Enter the context."""
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        """Exit the context and handle exceptions."""
        if exc_type is None:
            return False

        self.error = ErrorHandler.handle(exc_value, self.context, log_traceback=False)

        return not self.reraise


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, VemailError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."
