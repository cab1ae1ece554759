"""
Error Types

Upstream failures carry a structured code so services can tell
"no such symbol" apart from "try again next cycle". HTTP errors use a
small envelope shared by all routers.
"""

from enum import Enum
from typing import Optional

from fastapi import HTTPException, status
from pydantic import BaseModel


class UpstreamErrorCode(Enum):
    """Upstream failure classification."""

    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    PROVIDER_ERROR = "provider_error"


class UpstreamError(Exception):
    """
    Upstream fetch failure.

    Attributes:
        message: Human-readable error description
        code: Structured error code
        retryable: Whether a later attempt may succeed
    """

    def __init__(
        self,
        message: str,
        code: UpstreamErrorCode = UpstreamErrorCode.PROVIDER_ERROR,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.retryable = retryable

    @property
    def is_absent(self) -> bool:
        """Not-found and malformed payloads both mean "no data for this key"."""
        return self.code in (UpstreamErrorCode.NOT_FOUND, UpstreamErrorCode.MALFORMED)


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    code: ErrorCode
    message: str


def http_error(
    code: ErrorCode, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
) -> HTTPException:
    detail = ErrorDetail(code=code, message=message)
    return HTTPException(status_code=http_status, detail=detail.model_dump(mode="json"))


def not_found(message: str) -> HTTPException:
    return http_error(ErrorCode.NOT_FOUND, message, status.HTTP_404_NOT_FOUND)


def internal_error(message: Optional[str] = None) -> HTTPException:
    return http_error(
        ErrorCode.INTERNAL_ERROR,
        message or "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
