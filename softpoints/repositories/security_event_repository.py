from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.models.security import PioneerBadge, SecurityEvent
from softpoints.models.user import User
from softpoints.repositories.base import BaseRepository
from softpoints.schemas.fraud import SecurityEventCreate


class SecurityEventRepository(BaseRepository[SecurityEvent, SecurityEventCreate]):
    """보안 이벤트와 파이오니어 배지 저장소"""

    def __init__(self, db: AsyncSession):
        super().__init__(SecurityEvent, SecurityEventCreate, db)

    async def record(
        self,
        user_id: int,
        event_type: str,
        ip_address: Optional[str] = None,
        country: Optional[str] = None,
    ) -> SecurityEvent:
        return await self.create(
            user_id=user_id,
            event_type=event_type,
            ip_address=ip_address,
            country=country,
        )

    async def count_since(self, user_id: int, event_type: str, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count(SecurityEvent.id)).where(
                and_(
                    SecurityEvent.user_id == user_id,
                    SecurityEvent.event_type == event_type,
                    SecurityEvent.created_at >= since,
                )
            )
        )
        return int(result.scalar_one())

    async def get_last_known_country(self, user_id: int) -> Optional[str]:
        result = await self.db.execute(
            select(SecurityEvent.country)
            .where(SecurityEvent.user_id == user_id, SecurityEvent.country.is_not(None))
            .order_by(desc(SecurityEvent.created_at), desc(SecurityEvent.id))
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Pioneer badges
    # ------------------------------------------------------------------

    async def get_badge(self, user_id: int) -> Optional[PioneerBadge]:
        result = await self.db.execute(
            select(PioneerBadge).where(PioneerBadge.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_badges(self, limit: int) -> List[Tuple[PioneerBadge, str]]:
        """배지 번호 순 (보유자 닉네임 포함)"""
        result = await self.db.execute(
            select(PioneerBadge, User.nickname)
            .join(User, User.id == PioneerBadge.user_id)
            .order_by(PioneerBadge.badge_number)
            .limit(limit)
        )
        return [(badge, nickname) for badge, nickname in result.all()]

    async def count_badges(self) -> int:
        result = await self.db.execute(select(func.count(PioneerBadge.id)))
        return int(result.scalar_one())

    async def create_badge(
        self,
        user_id: int,
        badge_number: int,
        eligibility_score: int,
        activity_metrics: Dict[str, Any],
    ) -> PioneerBadge:
        badge = PioneerBadge(
            user_id=user_id,
            badge_number=badge_number,
            eligibility_score=eligibility_score,
            activity_metrics=activity_metrics,
        )
        self.db.add(badge)
        await self.db.flush()
        return badge
