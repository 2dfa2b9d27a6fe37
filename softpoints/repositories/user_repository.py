from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.models.user import User as UserModel
from softpoints.repositories.base import BaseRepository
from softpoints.schemas.user import User as UserSchema


class UserRepository(BaseRepository[UserModel, UserSchema]):
    """사용자 리포지토리 - 인증과 계정 나이 판단에 필요한 최소 기능"""

    def __init__(self, db: AsyncSession):
        super().__init__(UserModel, UserSchema, db)

    async def get_active_user(self, user_id: int) -> Optional[UserSchema]:
        result = await self.db.execute(
            select(UserModel).where(UserModel.id == user_id, UserModel.is_active.is_(True))
        )
        return self._to_schema(result.scalar_one_or_none())
