"""Custom exceptions for the Noted engine.

Provides a structured exception hierarchy with error codes and
machine-readable error information. The error code values are the ones
reported across the engine boundary.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes reported by the engine boundary."""

    OK = 0
    INVALID_PARAM = -1
    DATABASE = -2
    NOT_FOUND = -3
    MEMORY = -4


class NotedError(Exception):
    """Base exception for all Noted errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_PARAM,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class InvalidParamError(NotedError):
    """Raised when a required input is missing or malformed."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=ErrorCode.INVALID_PARAM, details=details)
        self.field = field
        self.value = value


class NoteNotFoundError(NotedError):
    """Raised when an operation targets a note id that does not exist."""

    def __init__(self, note_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID {note_id} not found",
            code=ErrorCode.NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class StorageError(NotedError):
    """Raised when the store cannot be opened, read or written."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.DATABASE, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class PayloadAllocationError(NotedError):
    """Raised when a result payload cannot be assembled."""

    def __init__(self, message: str, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, code=ErrorCode.MEMORY, details=details)
        self.operation = operation


class PayloadReleasedError(NotedError):
    """Raised on double release or use of a payload after release."""

    def __init__(self, handle: int, message: Optional[str] = None):
        super().__init__(
            message or f"Payload {handle} has already been released",
            code=ErrorCode.INVALID_PARAM,
            details={"handle": handle}
        )
        self.handle = handle


class ConfigurationError(NotedError):
    """Raised for configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=ErrorCode.INVALID_PARAM, details=details)
        self.config_key = config_key


_ERRORS_BY_CODE = {
    ErrorCode.INVALID_PARAM: InvalidParamError,
    ErrorCode.DATABASE: StorageError,
    ErrorCode.MEMORY: PayloadAllocationError,
}


def error_from_code(
    code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None
) -> NotedError:
    """Rebuild an exception from an error code reported by the boundary."""
    details = details or {}
    if code is ErrorCode.NOT_FOUND and "note_id" in details:
        return NoteNotFoundError(details["note_id"], message)
    exc_class = _ERRORS_BY_CODE.get(code)
    if exc_class is None:
        return NotedError(message, code=code, details=details)
    exc = exc_class(message)
    exc.details.update(details)
    return exc
