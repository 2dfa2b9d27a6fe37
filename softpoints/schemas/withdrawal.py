from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WithdrawalRequestCreate(BaseModel):
    """출금 요청

    금액 검증(최소 금액, 잔액)은 서비스의 validate_withdrawal_request 에서
    여러 오류를 한 번에 반환하기 위해 스키마에서는 형식만 검사합니다.
    """

    amount: Decimal = Field(..., description="출금 금액 (통화 단위)")
    currency: str = Field("USD", min_length=3, max_length=10)
    payout_method: Optional[str] = Field(None, max_length=50)
    payment_details: Optional[Dict[str, Any]] = None


class WithdrawalValidationResponse(BaseModel):
    valid: bool
    errors: List[str]


class WithdrawalResponse(BaseModel):
    success: bool
    status: Literal["rejected", "restricted", "processing", "failed"]
    message: str
    errors: List[str] = Field(default_factory=list)
    blocked_actions: List[str] = Field(default_factory=list)
    withdrawal_id: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    fee: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    points_debited: Optional[int] = None
    balance_after: Optional[int] = None


class WithdrawalEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    amount: Decimal
    currency: str
    payout_method: str
    fee: Decimal
    net_amount: Decimal
    points_debited: int
    status: str
    debit_transaction_id: Optional[int] = None
    refund_transaction_id: Optional[int] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class WithdrawalHistoryResponse(BaseModel):
    withdrawals: List[WithdrawalEntry]
    total_count: int
    has_next: bool


class WithdrawalFailRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BoostRequest(BaseModel):
    content_id: str = Field(..., min_length=1, max_length=255)
    boost_type: Literal["basic", "premium", "featured"] = "basic"
    request_id: str = Field(..., min_length=1, max_length=100, description="중복 방지용 요청 ID")


class BoostResponse(BaseModel):
    success: bool
    status: Literal["active", "rejected", "restricted"]
    message: str
    boost_id: Optional[int] = None
    cost_points: int = 0
    balance_after: Optional[int] = None
    ends_at: Optional[datetime] = None
    blocked_actions: List[str] = Field(default_factory=list)
