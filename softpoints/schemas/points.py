from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PointsBalanceResponse(BaseModel):
    """포인트 잔액 응답"""

    model_config = ConfigDict(from_attributes=True)

    user_id: int = Field(..., description="사용자 ID")
    balance: int = Field(..., description="현재 포인트 잔액")
    cash_value: str = Field(..., description="현재 잔액의 현금 가치 (USD)")
    cached: bool = Field(False, description="세션 캐시에서 읽었는지 여부")


class PointsTransactionEntry(BaseModel):
    """포인트 원장 항목"""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int = Field(..., description="원장 항목 ID")
    user_id: int = Field(..., description="사용자 ID")
    transaction_type: str = Field(..., description="거래 유형")
    amount: int = Field(..., description="포인트 변화량")
    source_type: str = Field(..., description="포인트 출처")
    source_id: Optional[str] = Field(None, description="원천 이벤트 ID")
    content_id: Optional[str] = Field(None, description="관련 콘텐츠 ID")
    balance_before: int = Field(..., description="거래 전 잔액")
    balance_after: int = Field(..., description="거래 후 잔액")
    description: Optional[str] = Field(None, description="거래 설명")
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias="extra_metadata", description="감사용 메타데이터"
    )
    created_at: datetime = Field(..., description="생성 시간")


class LedgerAppendResult(BaseModel):
    """원장 추가 결과"""

    status: Literal["appended", "duplicate", "insufficient_balance"]
    transaction: Optional[PointsTransactionEntry] = None
    balance_after: int

    @property
    def applied(self) -> bool:
        return self.status == "appended"


class PointsLedgerResponse(BaseModel):
    """포인트 원장 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[PointsTransactionEntry] = Field(..., description="원장 항목 목록 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")
    limit: int
    offset: int


class AdminPointsAdjustmentRequest(BaseModel):
    """관리자 포인트 조정 요청"""

    user_id: int = Field(..., gt=0, description="사용자 ID")
    amount: int = Field(..., description="조정할 포인트 (양수: 보너스, 음수: 페널티)")
    reason: str = Field(..., min_length=1, max_length=255, description="조정 사유")
    reference_id: Optional[str] = Field(None, max_length=100, description="중복 방지용 참조 ID")


class PointsTransferRequest(BaseModel):
    """사용자 간 포인트 이체 요청"""

    to_user_id: int = Field(..., gt=0)
    amount: int = Field(..., gt=0)
    transfer_id: str = Field(..., min_length=1, max_length=100, description="중복 방지용 이체 ID (보낸 사람 기준 고유)")
    note: Optional[str] = Field(None, max_length=255)


class PointsTransferResponse(BaseModel):
    success: bool
    message: str
    debit: Optional[PointsTransactionEntry] = None
    credit: Optional[PointsTransactionEntry] = None


class PointsTransactionResponse(BaseModel):
    """포인트 거래 응답"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="거래 ID")
    amount: int = Field(..., description="포인트 변화량")
    balance_after: int = Field(..., description="거래 후 잔액")
    message: str = Field(..., description="응답 메시지")


class PointsIntegrityCheckResponse(BaseModel):
    """포인트 정합성 검증 응답"""

    status: Literal["OK", "MISMATCH"] = Field(..., description="검증 상태")
    user_id: Optional[int] = Field(None, description="사용자 ID (단일 사용자 검증 시)")
    calculated_balance: Optional[int] = Field(None, description="SUM(amount)로 계산된 잔액")
    recorded_balance: Optional[int] = Field(None, description="최신 balance_after")
    materialized_balance: Optional[int] = Field(None, description="잔액 테이블 값")
    total_balances: Optional[int] = Field(None, description="전체 잔액 테이블 합계")
    total_amounts: Optional[int] = Field(None, description="전체 amount 합계")
    user_count: Optional[int] = Field(None, description="사용자 수")
    entry_count: Optional[int] = Field(None, description="항목 수")
    error: Optional[str] = Field(None, description="오류 메시지")
    entry_id: Optional[int] = Field(None, description="오류 발생 항목 ID")
    verified_at: datetime


class SourceBreakdown(BaseModel):
    source_type: str
    earned: int
    spent: int


class PointsAnalyticsResponse(BaseModel):
    """기간별 포인트 분석"""

    user_id: int
    period: Literal["day", "week", "month", "year"]
    period_start: datetime
    period_end: datetime
    total_earned: int
    total_spent: int
    net_change: int
    transaction_count: int
    by_source: List[SourceBreakdown]


class TaxReportMonth(BaseModel):
    month: int
    points_earned: int
    cash_value: str


class TaxReportResponse(BaseModel):
    """연간 세금 신고용 리포트"""

    user_id: int
    year: int
    currency: str
    months: List[TaxReportMonth]
    total_points_earned: int
    total_cash_value: str
    completed_withdrawals: int
    total_withdrawn: str
    total_withdrawal_fees: str
