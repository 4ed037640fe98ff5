from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"


class ServiceError(Exception):
    """Base exception for domain errors raised by CRUD and service code.

    Attributes:
        code: ErrorCode enum
        message: human readable message, safe to return to the client
        details: optional structured data (e.g. {'trade_id': ..., 'status': ...})
    """

    code = ErrorCode.ERR_INVALID_INPUT
    status_code = 400

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.code.value
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class PermissionDeniedError(ServiceError):
    code = ErrorCode.ERR_PERMISSION_DENIED
    status_code = 403


class NotFoundError(ServiceError):
    code = ErrorCode.ERR_NOT_FOUND
    status_code = 404


class InvalidTransitionError(ServiceError):
    code = ErrorCode.ERR_INVALID_TRANSITION
    status_code = 409


class ConflictError(ServiceError):
    code = ErrorCode.ERR_CONFLICT
    status_code = 409


class ValidationError(ServiceError):
    code = ErrorCode.ERR_INVALID_INPUT
    status_code = 422
