"""Standardized API Response Schemas"""

from typing import Generic, TypeVar
from pydantic import BaseModel

from classledger.core.exceptions import LedgerError


T = TypeVar('T')


class SuccessResponse(BaseModel, Generic[T]):
    """
    Standard success response envelope.

    Example:
        {
            "success": true,
            "data": {"payment": {...}, "session_credit": "3.0000", "replayed": false},
            "message": "Payment recorded"
        }
    """
    success: bool = True
    data: T
    message: str = "Operation successful"


class ErrorDetail(BaseModel):
    """Error details structure"""
    code: str
    message: str


class ErrorResponse(BaseModel):
    """
    Standard error response envelope.

    Example:
        {
            "success": false,
            "error": {
                "code": "CONFLICT",
                "message": "Month 3/2026 is already frozen"
            }
        }
    """
    success: bool = False
    error: ErrorDetail

    @classmethod
    def from_error(cls, exc: LedgerError) -> "ErrorResponse":
        return cls(error=ErrorDetail(code=exc.code, message=exc.message))
