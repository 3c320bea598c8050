"""Custom exceptions for notesmart.

Provides a structured exception hierarchy with error codes and
machine-readable error information, so the request-handling layer can map
failures to responses without parsing messages.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Lookup errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTEBOOK_NOT_FOUND = 1002
    TAG_NOT_FOUND = 1003

    # Access errors (2xxx)
    OWNERSHIP_VIOLATION = 2001
    UNAUTHENTICATED = 2002

    # Uniqueness errors (3xxx)
    DUPLICATE_TAG_NAME = 3001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_USER_ID = 7002


class NotesmartError(Exception):
    """Base exception for all notesmart errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
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


class NotFoundError(NotesmartError):
    """Raised when an entity does not exist (or is not visible to the caller)."""

    entity = "Entity"
    default_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{self.entity} with ID '{entity_id}' not found",
            code=self.default_code,
            details={f"{self.entity.lower()}_id": entity_id}
        )
        self.entity_id = entity_id


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    entity = "Note"
    default_code = ErrorCode.NOTE_NOT_FOUND


class NotebookNotFoundError(NotFoundError):
    """Raised when a notebook cannot be found."""

    entity = "Notebook"
    default_code = ErrorCode.NOTEBOOK_NOT_FOUND


class TagNotFoundError(NotFoundError):
    """Raised when a tag cannot be found in the caller's scope."""

    entity = "Tag"
    default_code = ErrorCode.TAG_NOT_FOUND


class OwnershipViolationError(NotesmartError):
    """Raised when the acting user does not own the entity being accessed.

    Read operations fold this case into "not found"; it is only raised by
    operations that check ownership explicitly before mutating.
    """

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        user_id: str,
        message: Optional[str] = None
    ):
        super().__init__(
            message or f"{entity} '{entity_id}' not found or access denied",
            code=ErrorCode.OWNERSHIP_VIOLATION,
            details={"entity": entity, "entity_id": entity_id, "user_id": user_id}
        )
        self.entity = entity
        self.entity_id = entity_id
        self.user_id = user_id


class DuplicateNameError(NotesmartError):
    """Raised when a tag name is already taken within its scope."""

    def __init__(self, name: str, user_id: Optional[str] = None):
        details: Dict[str, Any] = {"name": name}
        if user_id:
            details["user_id"] = user_id
        super().__init__(
            f"Tag '{name}' already exists",
            code=ErrorCode.DUPLICATE_TAG_NAME,
            details=details
        )
        self.name = name
        self.user_id = user_id


class ValidationError(NotesmartError):
    """Raised for malformed input (missing field, length violation)."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class UnauthenticatedError(NotesmartError):
    """Raised when no user identity can be resolved for a request."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message, code=ErrorCode.UNAUTHENTICATED)


class StorageError(NotesmartError):
    """Raised for unexpected persistence failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error
