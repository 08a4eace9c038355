"""Typed application errors raised by the service layer.

Every service entry point re-raises failures as a single ``AppError`` carrying
a stable code, a category and a retryable flag. Routes turn it into a JSON
response via the handler registered in ``main.py``.
"""

from enum import StrEnum


class ErrorCategory(StrEnum):
    VALIDATION = "validation"
    DATABASE = "database"
    UPSTREAM = "upstream"
    CONFLICT = "conflict"


class ErrorCode(StrEnum):
    DB_ERROR = "DB_ERROR"
    NOT_FOUND = "NOT_FOUND"
    MISSING_PROCESSING_DATA = "MISSING_PROCESSING_DATA"
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    CONCURRENT_APPROVAL = "CONCURRENT_APPROVAL"
    INVALID_BULK_ACTION = "INVALID_BULK_ACTION"
    PROCESSING_RESULT_EXISTS = "PROCESSING_RESULT_EXISTS"


class AppError(Exception):
    """Application error with a stable code for API consumers."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        category: ErrorCategory,
        retryable: bool = False,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.retryable = retryable
        self.status_code = status_code

    def to_dict(self) -> dict[str, str | bool]:
        return {
            "detail": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "retryable": self.retryable,
        }


def database_error(message: str) -> AppError:
    return AppError(message, ErrorCode.DB_ERROR, ErrorCategory.DATABASE)


def not_found(message: str) -> AppError:
    return AppError(
        message, ErrorCode.NOT_FOUND, ErrorCategory.VALIDATION, status_code=404
    )


def missing_processing_data(message: str) -> AppError:
    return AppError(
        message,
        ErrorCode.MISSING_PROCESSING_DATA,
        ErrorCategory.VALIDATION,
        status_code=422,
    )


def processing_result_exists(message: str) -> AppError:
    return AppError(
        message,
        ErrorCode.PROCESSING_RESULT_EXISTS,
        ErrorCategory.CONFLICT,
        status_code=409,
    )


class AIUnavailableError(AppError):
    """Raised when the AI provider is not configured or not reachable."""

    def __init__(self, message: str):
        super().__init__(
            message,
            ErrorCode.AI_UNAVAILABLE,
            ErrorCategory.UPSTREAM,
            status_code=503,
        )


class ConcurrentApprovalError(AppError):
    """Raised when another approval already consumed the same inbox item."""

    def __init__(self, inbox_item_id: str):
        super().__init__(
            f"Inbox item {inbox_item_id} was modified by a concurrent approval",
            ErrorCode.CONCURRENT_APPROVAL,
            ErrorCategory.CONFLICT,
            status_code=409,
        )
        self.inbox_item_id = inbox_item_id
