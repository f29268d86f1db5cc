# backend/errors.py
from typing import Any, Dict, Optional

from pydantic.alias_generators import to_camel


# Base class for failures that map onto an HTTP response
class AppError(Exception):
    status_code = 500
    error = "InternalError"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error": self.error}
        # Extra context uses the same camelCase keys as the response schemas
        body.update({to_camel(k): v for k, v in self.extra.items() if v is not None})
        return body


class ValidationError(AppError):
    status_code = 400
    error = "ValidationError"


class NotFoundError(AppError):
    status_code = 404
    error = "NotFound"


class DuplicateCodeError(AppError):
    status_code = 400
    error = "DuplicateCode"


class InsufficientStockError(AppError):
    status_code = 400
    error = "InsufficientStock"

    def __init__(self, message: str, product_id: int, product_name: Optional[str] = None):
        super().__init__(message, product_id=product_id, product_name=product_name)
        self.product_id = product_id
        self.product_name = product_name


class AlreadyFulfilledError(AppError):
    status_code = 400
    error = "AlreadyFulfilled"


class ProductGoneError(AppError):
    status_code = 400
    error = "ProductGone"

    def __init__(self, message: str, product_id: int):
        super().__init__(message, product_id=product_id)
        self.product_id = product_id


class StorageFailureError(AppError):
    status_code = 500
    error = "StorageFailure"


# Raised when a conditional decrement still left a negative counter
class StockInvariantError(AppError):
    status_code = 500
    error = "StockInvariantViolation"


class AuditLogImmutableError(AppError):
    status_code = 500
    error = "AuditLogImmutable"


# A stock edit lost the race against a concurrent stock change
class StockConflictError(AppError):
    status_code = 409
    error = "StockConflict"
