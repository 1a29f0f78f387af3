"""Error hierarchy for the LuckyGuess R runner.

Two families of errors exist:
- input/configuration errors, caused by the job descriptor or deployment
- execution errors, raised while provisioning, running or collecting

None of them are retried; the job stops on the first one.
"""

from typing import Any, Dict, Optional


class LgrError(Exception):
    """Base exception for all runner errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize runner error.

        Args:
            message: Human-readable error message, safe to show to the user
            error_code: Machine-readable error code (e.g., "SCRIPT_FAILED")
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


class ConfigurationError(LgrError):
    """Invalid job descriptor or deployment configuration.

    Raised for missing required fields, empty scripts, missing data
    directories and unknown script modules.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIGURATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class CredentialsError(LgrError):
    """Warehouse credentials could not be provisioned."""

    def __init__(
        self,
        message: str,
        error_code: str = "CREDENTIALS_UNAVAILABLE",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class ScriptExecutionError(LgrError):
    """The R interpreter exited with a non-zero status.

    The message carries the composed diagnostic (debug log, captured
    output or the JAVA_HOME hint).
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SCRIPT_FAILED",
        details: Optional[Dict[str, Any]] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, error_code, details)
        self.exit_code = exit_code
        if exit_code is not None:
            self.details["exit_code"] = exit_code


class OutputCollectionError(LgrError):
    """Reading the output file table or moving/uploading a file failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "OUTPUT_COLLECTION_FAILED",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class StorageApiError(LgrError):
    """Storage API request failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_API_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, error_code, details)
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


def is_user_error(error: Exception) -> bool:
    """Return True when the error is caused by the job input."""
    return isinstance(error, ConfigurationError)


def get_error_code(error: Exception) -> str:
    """Get error code from exception.

    Args:
        error: Exception to extract code from

    Returns:
        Error code string
    """
    if isinstance(error, LgrError):
        return error.error_code
    return "UNKNOWN_ERROR"


def wrap_exception(
    error: Exception,
    error_class: type = LgrError,
    message: Optional[str] = None,
) -> LgrError:
    """Wrap an exception in a runner error.

    Args:
        error: Original exception
        error_class: Runner error class to wrap with
        message: Optional custom message

    Returns:
        Wrapped runner error
    """
    if isinstance(error, LgrError):
        return error

    return error_class(
        message=message or str(error),
        details={
            "original_error": type(error).__name__,
            "original_message": str(error),
        },
    )
