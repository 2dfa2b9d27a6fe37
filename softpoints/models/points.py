"""
SoftPoints 데이터 모델

이 파일은 사용자 포인트의 모든 거래 내역을 저장하는 원장(Ledger) 테이블과
사용자별 잔액 테이블을 정의합니다.
포인트의 추가/차감은 모두 원장에 기록되어 완전한 감사 추적(Audit Trail)을 제공합니다.
"""

from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, JSON, String, Text
from sqlalchemy.schema import UniqueConstraint

from softpoints.models.base import Base, BigIntId, utcnow


class TransactionType(str, Enum):
    """원장 거래 유형"""

    EARNED = "earned"
    SPENT = "spent"
    BONUS = "bonus"
    PENALTY = "penalty"
    TRANSFER = "transfer"
    REFUND = "refund"  # 출금 실패 시 보상 크레딧


class SourceType(str, Enum):
    """포인트 발생 출처"""

    VIEWS = "views"
    TIPS = "tips"
    SUBSCRIPTIONS = "subscriptions"
    SALES = "sales"
    REFERRAL = "referral"
    DAILY_LOGIN = "daily_login"
    BONUS = "bonus"
    BOOST = "boost"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    ADMIN = "admin"


class PointsTransaction(Base):
    """
    포인트 원장 테이블 - 모든 포인트 거래 내역을 저장

    이 테이블은 다음 원칙을 따릅니다:
    1. 불변성(Immutable): 한번 생성된 레코드는 수정/삭제되지 않음 (updated_at 없음)
    2. 완전성(Complete): 모든 포인트 변동사항이 기록됨
    3. 멱등성(Idempotent): (user_id, source_type, source_id) 유니크 제약으로 중복 지급 방지
    4. 정합성(Integrity): balance_after = balance_before + amount
    """

    __tablename__ = "points_transactions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "source_type", "source_id", name="uq_points_dedup_key"
        ),
        Index("idx_points_user_created", "user_id", "created_at"),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)

    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False)

    transaction_type = Column(String(20), nullable=False)

    # 양수면 증가, 음수면 감소
    amount = Column(BigInteger, nullable=False)

    source_type = Column(String(30), nullable=False)

    # 원천 이벤트 참조 (영상 ID, 주문 ID 등) - 중복 방지용, 소유권 판단에는 사용하지 않음
    source_id = Column(String(255), nullable=True)
    content_id = Column(String(255), nullable=True)

    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)

    description = Column(Text)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class PointsBalance(Base):
    """
    사용자별 현재 잔액 (비정규화)

    원장 INSERT와 같은 DB 트랜잭션 안에서 원자적 증감(UPDATE ... RETURNING)으로만 갱신됩니다.
    항상 최신 원장 항목의 balance_after 와 같아야 합니다.
    """

    __tablename__ = "points_balances"

    user_id = Column(BigInteger, ForeignKey("users.id"), primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
