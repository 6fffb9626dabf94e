"""Exceptions raised by the note vault.

Every error carries an :class:`ErrorCode` and a ``details`` dict so an
outer layer (an HTTP handler, the CLI) can report it without parsing
messages. Unknown ids are not errors: lookups return ``None`` and
``delete`` returns ``False``.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_UNKNOWN_FIELD = 1003

    # Storage errors (4xxx)
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Path errors (7xxx)
    PATH_TRAVERSAL_DETECTED = 7005


class VaultError(Exception):
    """Base exception for all vault errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
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


class NoteValidationError(VaultError):
    """A note field or path was rejected."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(VaultError):
    """Writing or deleting a note file failed; the cache was left as it was."""

    def __init__(
        self,
        message: str,
        operation: str,
        path: str,
        code: ErrorCode,
        original_error: Optional[Exception] = None
    ):
        details = {"operation": operation, "path": path}
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ConfigurationError(VaultError):
    """A setting from the environment or the command line is unusable."""

    def __init__(self, message: str, config_key: str, value: Optional[Any] = None):
        details: Dict[str, Any] = {"config_key": config_key}
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, code=ErrorCode.CONFIG_INVALID, details=details)
        self.config_key = config_key
