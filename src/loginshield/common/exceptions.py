"""Custom exceptions for LoginShield.

Provides a hierarchy of exceptions for different error types.
All LoginShield exceptions inherit from LoginShieldException.
"""

from typing import Any, Dict, Optional


class LoginShieldException(Exception):
    """Base exception for all LoginShield errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "LOGINSHIELD_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(LoginShieldException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(LoginShieldException):
    """Raised when input validation fails at the engine boundary."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class StorageError(LoginShieldException):
    """Raised when the document store fails an operation."""

    def __init__(
        self,
        message: str,
        collection: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "STORAGE_ERROR",
    ):
        details = details or {}
        details["collection"] = collection
        details["operation"] = operation
        super().__init__(message, code=code, details=details)


class StoreTimeoutError(StorageError):
    """Raised when a store call exceeds its request-scoped timeout."""

    def __init__(
        self,
        collection: str,
        operation: str,
        timeout_seconds: float,
    ):
        super().__init__(
            f"Store call {collection}.{operation} timed out after {timeout_seconds}s",
            collection=collection,
            operation=operation,
            details={"timeout_seconds": timeout_seconds},
            code="STORE_TIMEOUT",
        )


class RecordNotFoundError(LoginShieldException):
    """Raised when an administrative operation targets a missing record."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(
            f"No {collection} record with id '{record_id}'",
            code="NOT_FOUND",
            details={"collection": collection, "record_id": record_id},
        )


class RuleEvaluationError(LoginShieldException):
    """Raised when an access rule cannot be evaluated."""

    def __init__(
        self,
        message: str,
        rule_id: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["rule_id"] = rule_id
        super().__init__(message, code="RULE_EVALUATION_ERROR", details=details)


class AlertDeliveryError(LoginShieldException):
    """Raised when a security alert cannot be written to its sink."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="ALERT_ERROR", details=details)
