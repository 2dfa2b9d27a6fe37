from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.models.base import utcnow
from softpoints.models.withdrawal import (
    ContentBoost,
    WITHDRAWAL_TRANSITIONS,
    WithdrawalRequest,
    WithdrawalStatus,
)
from softpoints.repositories.base import BaseRepository
from softpoints.schemas.withdrawal import WithdrawalEntry


class InvalidTransitionError(Exception):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move withdrawal from {current} to {target}")


class WithdrawalRepository(BaseRepository[WithdrawalRequest, WithdrawalEntry]):
    """출금 요청 및 부스트 구매 기록"""

    def __init__(self, db: AsyncSession):
        super().__init__(WithdrawalRequest, WithdrawalEntry, db)

    async def create_request(self, **kwargs) -> WithdrawalRequest:
        kwargs.setdefault("status", WithdrawalStatus.PENDING.value)
        return await self.create(**kwargs)

    async def get_for_update(self, withdrawal_id: int) -> Optional[WithdrawalRequest]:
        stmt = (
            select(WithdrawalRequest)
            .where(WithdrawalRequest.id == withdrawal_id)
            .execution_options(populate_existing=True)
        )
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def transition(
        self,
        withdrawal: WithdrawalRequest,
        target: WithdrawalStatus,
        **fields,
    ) -> WithdrawalRequest:
        """허용된 상태 전이만 수행 (pending → processing → completed | failed)"""
        current = withdrawal.status
        if target.value not in WITHDRAWAL_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(current, target.value)

        withdrawal.status = target.value
        for key, value in fields.items():
            setattr(withdrawal, key, value)
        withdrawal.updated_at = utcnow()
        await self.db.flush()
        return withdrawal

    async def get_user_withdrawals(
        self, user_id: int, limit: int = 20, offset: int = 0
    ) -> Tuple[List[WithdrawalEntry], int]:
        total = (
            await self.db.execute(
                select(func.count(WithdrawalRequest.id)).where(
                    WithdrawalRequest.user_id == user_id
                )
            )
        ).scalar_one()
        result = await self.db.execute(
            select(WithdrawalRequest)
            .where(WithdrawalRequest.user_id == user_id)
            .order_by(desc(WithdrawalRequest.created_at), desc(WithdrawalRequest.id))
            .limit(limit)
            .offset(offset)
        )
        return self._to_schemas(list(result.scalars().all())), int(total)

    async def get_completed_in_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[WithdrawalRequest]:
        result = await self.db.execute(
            select(WithdrawalRequest).where(
                and_(
                    WithdrawalRequest.user_id == user_id,
                    WithdrawalRequest.status == WithdrawalStatus.COMPLETED.value,
                    WithdrawalRequest.created_at >= start,
                    WithdrawalRequest.created_at < end,
                )
            )
        )
        return list(result.scalars().all())

    async def create_boost(self, **kwargs) -> ContentBoost:
        boost = ContentBoost(**kwargs)
        self.db.add(boost)
        await self.db.flush()
        return boost

    async def get_boost_by_transaction(self, transaction_id: int) -> Optional[ContentBoost]:
        result = await self.db.execute(
            select(ContentBoost).where(ContentBoost.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()
