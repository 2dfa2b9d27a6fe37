from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """타임스탬프 필드를 위한 믹스인"""

    @declared_attr
    def created_at(cls):
        # 애플리케이션에서 마이크로초 단위로 기록 (원장 정렬 기준)
        return Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @declared_attr
    def updated_at(cls):
        return Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class BaseModel(Base, TimestampMixin):
    """모든 모델의 베이스 클래스"""

    __abstract__ = True


def as_utc(value: datetime) -> datetime:
    """SQLite 는 tz 정보 없이 UTC 로 저장하므로 읽은 값을 aware 로 보정"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
