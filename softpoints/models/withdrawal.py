"""
출금(포인트 → 현금 전환) 및 부스트 구매 모델
"""

from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, JSON, Numeric, String, Text

from softpoints.models.base import BaseModel, BigIntId


class WithdrawalStatus(str, Enum):
    """출금 상태: pending → processing → completed | failed"""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# 허용되는 상태 전이
WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING.value: {
        WithdrawalStatus.PROCESSING.value,
        WithdrawalStatus.FAILED.value,
    },
    WithdrawalStatus.PROCESSING.value: {
        WithdrawalStatus.COMPLETED.value,
        WithdrawalStatus.FAILED.value,
    },
    WithdrawalStatus.COMPLETED.value: set(),
    WithdrawalStatus.FAILED.value: set(),
}


class WithdrawalRequest(BaseModel):
    __tablename__ = "withdrawal_requests"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    payout_method = Column(String(50), nullable=False)
    payment_details = Column(JSON, nullable=False)

    fee = Column(Numeric(18, 2), nullable=False)
    net_amount = Column(Numeric(18, 2), nullable=False)
    points_debited = Column(BigInteger, nullable=False)

    status = Column(String(20), nullable=False, default=WithdrawalStatus.PENDING.value)

    debit_transaction_id = Column(BigInteger, ForeignKey("points_transactions.id"))
    refund_transaction_id = Column(BigInteger, ForeignKey("points_transactions.id"))
    failure_reason = Column(Text)


class ContentBoost(BaseModel):
    __tablename__ = "content_boosts"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    content_id = Column(String(255), nullable=False)
    boost_type = Column(String(20), nullable=False)  # basic, premium, featured
    cost_points = Column(BigInteger, nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    transaction_id = Column(BigInteger, ForeignKey("points_transactions.id"))
