"""
Custom exceptions for PropIntel learning.

Provides structured error handling with recovery hints and error codes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
import traceback


class ErrorCode(str, Enum):
    """Standard error codes for the learning subsystem."""
    # General errors (1xxx)
    UNKNOWN_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    CONFIGURATION_ERROR = "E1002"

    # Data errors (2xxx)
    DATA_NOT_FOUND = "E2000"
    DATA_INVALID = "E2001"

    # Storage errors (7xxx)
    STORAGE_ERROR = "E7000"
    STORAGE_READ_FAILED = "E7001"
    STORAGE_WRITE_FAILED = "E7002"

    # Learning errors (8xxx)
    FEEDBACK_INVALID = "E8001"
    INSUFFICIENT_KNOWLEDGE = "E8002"


@dataclass
class RecoveryHint:
    """A hint for recovering from an error."""
    action: str
    description: str
    auto_retry: bool = False
    retry_delay_seconds: int = 0
    requires_human: bool = False


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    session_id: Optional[str] = None
    property_id: Optional[str] = None
    collection: Optional[str] = None
    service_name: str = "propintel-learning"
    additional: Dict[str, Any] = field(default_factory=dict)


class PropIntelError(Exception):
    """
    Base exception for the learning subsystem.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        recovery_hint: Optional[RecoveryHint] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.recovery_hint = recovery_hint
        self.context = context or ErrorContext()
        self.cause = cause
        self.stack_trace = traceback.format_exc() if cause else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
            "timestamp": self.context.timestamp.isoformat(),
        }

        if self.recovery_hint:
            result["recovery"] = {
                "action": self.recovery_hint.action,
                "description": self.recovery_hint.description,
                "auto_retry": self.recovery_hint.auto_retry,
            }

        if self.context.collection:
            result["collection"] = self.context.collection

        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationError(PropIntelError):
    """Error raised when validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        **kwargs,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            recovery_hint=RecoveryHint(
                action="fix_input",
                description="Check and fix the invalid input field",
            ),
            **kwargs,
        )
        self.field = field
        self.value = value


class FeedbackValidationError(ValidationError):
    """Error raised when a feedback submission is rejected."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        super().__init__(
            message=message,
            field=field,
            value=value,
            error_code=ErrorCode.FEEDBACK_INVALID,
            **kwargs,
        )


class ConfigurationError(PropIntelError):
    """Error raised when configuration is invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            recovery_hint=RecoveryHint(
                action="check_config",
                description="Review configuration settings",
                requires_human=True,
            ),
            **kwargs,
        )
        self.config_key = config_key


class DataNotFoundError(PropIntelError):
    """Error raised when requested data is not found."""

    def __init__(self, message: str, resource_type: str = "", resource_id: str = "", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATA_NOT_FOUND,
            recovery_hint=RecoveryHint(
                action="verify_id",
                description="Verify the resource ID exists",
            ),
            **kwargs,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class StorageError(PropIntelError):
    """Base error for persistence failures."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.STORAGE_ERROR,
        **kwargs,
    ):
        kwargs.setdefault(
            "recovery_hint",
            RecoveryHint(
                action="check_storage",
                description="Verify the data directory is readable and writable",
                auto_retry=True,
                retry_delay_seconds=5,
            ),
        )
        super().__init__(message=message, error_code=error_code, **kwargs)
        self.path = path


class StorageReadError(StorageError):
    """Error raised when a collection file cannot be read or parsed."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, path=path, error_code=ErrorCode.STORAGE_READ_FAILED, **kwargs)


class StorageWriteError(StorageError):
    """Error raised when a collection file cannot be written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, path=path, error_code=ErrorCode.STORAGE_WRITE_FAILED, **kwargs)


class InsufficientKnowledgeError(PropIntelError):
    """Error raised when a region has not accumulated enough data to answer."""

    def __init__(self, message: str, region_id: str = "", confidence: float = 0.0, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.INSUFFICIENT_KNOWLEDGE,
            recovery_hint=RecoveryHint(
                action="collect_more_data",
                description="Run more analyses in this region before relying on its knowledge",
            ),
            **kwargs,
        )
        self.region_id = region_id
        self.confidence = confidence
