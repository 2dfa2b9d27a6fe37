from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from softpoints.models.base import BaseModel, BigIntId


class UserRole(str, Enum):
    """사용자 역할 정의"""

    USER = "user"  # 일반 사용자
    ADMIN = "admin"  # 관리자
    SUPER_ADMIN = "super_admin"  # 최고 관리자

    @classmethod
    def is_admin(cls, role: Union[str, "UserRole"]) -> bool:
        """관리자 권한 확인"""
        if isinstance(role, cls):
            role = role.value
        return role in [cls.ADMIN.value, cls.SUPER_ADMIN.value]


class User(BaseModel):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )
    # 마지막으로 확인된 국가 코드 (위치 이상 탐지용)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(str(self.role))

    def account_age_days(self, now: datetime) -> int:
        created = self.created_at
        if created is None:
            return 0
        if created.tzinfo is None:
            created = created.replace(tzinfo=now.tzinfo)
        return max(0, (now - created).days)
