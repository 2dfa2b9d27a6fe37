from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """API 오류 베이스

    응답 본문: {"success": false, "error": {"code", "message", "details"}}
    하위 클래스는 상태 코드, 오류 코드, 기본 메시지만 선언합니다.
    """

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "SP_INTERNAL"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(
            status_code=self.http_status,
            detail={
                "success": False,
                "error": {
                    "code": self.error_code,
                    "message": self.message,
                    "details": self.details,
                },
            },
        )

    def __str__(self) -> str:
        return self.message


class AuthenticationError(BaseAPIException):
    http_status = status.HTTP_401_UNAUTHORIZED
    error_code = "SP_AUTH"
    default_message = "Authentication failed"


class ValidationError(BaseAPIException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "SP_VALIDATION"
    default_message = "Validation failed"


class NotFoundError(BaseAPIException):
    http_status = status.HTTP_404_NOT_FOUND
    error_code = "SP_NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(BaseAPIException):
    """상태 전이 불가, 배지 중복 수령 등"""

    http_status = status.HTTP_409_CONFLICT
    error_code = "SP_CONFLICT"
    default_message = "Resource conflict"


class InsufficientBalanceError(BaseAPIException):
    http_status = status.HTTP_400_BAD_REQUEST
    error_code = "SP_INSUFFICIENT_BALANCE"
    default_message = "Insufficient SoftPoints balance"


class InternalServerError(BaseAPIException):
    pass


# 서비스 계층 내부에서만 쓰이는 예외 (HTTP 로 직접 노출되지 않음)


class PayoutInitiationError(Exception):
    """Payout gateway could not start the external payout"""


class QueueDeliveryError(Exception):
    """Outbound SQS message could not be sent"""
