"""
부정 사용 탐지 및 파이오니어 배지 모델
"""

from enum import Enum

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Integer, JSON, String

from softpoints.models.base import BaseModel, BigIntId


class SecurityEventType(str, Enum):
    LOGIN = "login"
    REQUEST = "request"
    FAILED_VERIFICATION = "failed_verification"
    WITHDRAWAL_REQUEST = "withdrawal_request"
    PASSWORD_CHANGE = "password_change"


class SecurityEvent(BaseModel):
    """위험도 평가의 입력이 되는 보안 이벤트 기록"""

    __tablename__ = "security_events"
    __table_args__ = (
        Index("idx_security_events_user_type", "user_id", "event_type", "created_at"),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False)
    event_type = Column(String(50), nullable=False)
    ip_address = Column(String(64))
    country = Column(String(2))


class PioneerBadge(BaseModel):
    """초기 우수 사용자 배지 (최대 MAX_PIONEER_BADGES 개)"""

    __tablename__ = "pioneer_badges"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, unique=True)
    badge_number = Column(Integer, nullable=False, unique=True)
    eligibility_score = Column(Integer, nullable=False)
    activity_metrics = Column(JSON)
