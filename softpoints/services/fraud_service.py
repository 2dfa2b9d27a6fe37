"""
Fraud / eligibility scoring.

Risk assessment reads the ledger and security events only; it never writes
points. The pioneer badge is the one write path here.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.config import Settings, settings as default_settings
from softpoints.core.exceptions import ConflictError, NotFoundError, ValidationError
from softpoints.models.base import as_utc, utcnow
from softpoints.models.security import PioneerBadge, SecurityEventType
from softpoints.models.user import User as UserModel
from softpoints.repositories.points_repository import PointsRepository
from softpoints.repositories.security_event_repository import SecurityEventRepository
from softpoints.repositories.user_repository import UserRepository
from softpoints.schemas.fraud import (
    FraudRiskAssessment,
    Improvement,
    PioneerBadgeInfo,
    PioneerBadgeResponse,
    PioneerEligibilityResponse,
    PioneerLeaderboardResponse,
    PioneerSlotsResponse,
    QualityScoreResponse,
    RiskContext,
    RiskLevel,
    SecurityEventCreate,
)

logger = logging.getLogger(__name__)

# (reason, delta)
NEW_ACCOUNT = ("New account", 20)
LARGE_TRANSACTION = ("Large transaction amount", 25)
UNUSUAL_LOCATION = ("Unusual location", 15)
HIGH_REQUEST_FREQUENCY = ("High request frequency", 20)
FAILED_VERIFICATIONS = ("Multiple failed verifications", 25)
WITHDRAWAL_PATTERN = ("Unusual withdrawal pattern", 15)

BLOCKED_ACTIONS = {
    RiskLevel.LOW: [],
    RiskLevel.MEDIUM: ["large_transactions"],
    RiskLevel.HIGH: ["large_transactions", "trading"],
    RiskLevel.CRITICAL: ["withdrawal", "trading", "large_transactions", "boost"],
}

QUALITY_CRITERION_WEIGHT = 20
MIN_ACTIVE_DAYS = 10
MIN_DISTINCT_SOURCES = 3
MIN_RECENT_EVENTS = 10


def risk_level_for(score: int) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 30:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class FraudService:
    def __init__(self, db: AsyncSession, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.events_repo = SecurityEventRepository(db)
        self.points_repo = PointsRepository(db)
        self.user_repo = UserRepository(db)

    async def _get_user(self, user_id: int) -> UserModel:
        user = await self.user_repo.get_model_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Risk
    # ------------------------------------------------------------------

    async def assess_risk(
        self,
        user_id: int,
        context: Optional[RiskContext] = None,
        now: Optional[datetime] = None,
    ) -> FraudRiskAssessment:
        """가중치 신호 합산으로 위험도 평가 (최대 100)"""
        context = context or RiskContext()
        now = now or utcnow()
        user = await self._get_user(user_id)

        signals: List[Tuple[str, int]] = []

        if user.account_age_days(now) < self.settings.NEW_ACCOUNT_DAYS:
            signals.append(NEW_ACCOUNT)

        if (
            context.amount is not None
            and context.amount >= Decimal(self.settings.LARGE_TRANSACTION_THRESHOLD)
        ):
            signals.append(LARGE_TRANSACTION)

        if context.country:
            last_country = await self.events_repo.get_last_known_country(user_id) or user.country
            if last_country and last_country.upper() != context.country.upper():
                signals.append(UNUSUAL_LOCATION)

        requests_last_hour = await self.events_repo.count_since(
            user_id, SecurityEventType.REQUEST.value, now - timedelta(hours=1)
        )
        if requests_last_hour >= self.settings.RISK_MAX_REQUESTS_PER_HOUR:
            signals.append(HIGH_REQUEST_FREQUENCY)

        day_ago = now - timedelta(hours=24)
        failed_verifications = await self.events_repo.count_since(
            user_id, SecurityEventType.FAILED_VERIFICATION.value, day_ago
        )
        if failed_verifications >= self.settings.RISK_MAX_FAILED_VERIFICATIONS:
            signals.append(FAILED_VERIFICATIONS)

        withdrawals = await self.events_repo.count_since(
            user_id, SecurityEventType.WITHDRAWAL_REQUEST.value, day_ago
        )
        if withdrawals >= self.settings.RISK_MAX_WITHDRAWALS_PER_DAY:
            signals.append(WITHDRAWAL_PATTERN)

        score = min(100, sum(delta for _, delta in signals))
        level = risk_level_for(score)
        assessment = FraudRiskAssessment(
            user_id=user_id,
            risk_score=score,
            risk_level=level,
            reasons=[reason for reason, _ in signals],
            blocked_actions=list(BLOCKED_ACTIONS[level]),
            assessed_at=now,
        )
        if level != RiskLevel.LOW:
            logger.warning(
                f"Risk {level.value} ({score}) for user {user_id} on {context.action}: "
                f"{', '.join(assessment.reasons)}"
            )
        return assessment

    def is_blocked(
        self, assessment: FraudRiskAssessment, action: str, amount: Optional[Decimal] = None
    ) -> bool:
        if assessment.blocks(action):
            return True
        return (
            amount is not None
            and amount >= Decimal(self.settings.LARGE_TRANSACTION_THRESHOLD)
            and assessment.blocks("large_transactions")
        )

    async def record_security_event(
        self, user_id: int, request: SecurityEventCreate, commit: bool = True
    ) -> None:
        await self.events_repo.record(
            user_id=user_id,
            event_type=request.event_type,
            ip_address=request.ip_address,
            country=request.country.upper() if request.country else None,
        )
        if commit:
            await self.db.commit()

    # ------------------------------------------------------------------
    # Quality score / pioneer badge
    # ------------------------------------------------------------------

    async def get_quality_score(
        self, user_id: int, now: Optional[datetime] = None
    ) -> QualityScoreResponse:
        """다섯 가지 기준 각 20점으로 계정 품질 점수 계산"""
        now = now or utcnow()
        user = await self._get_user(user_id)

        events = await self.points_repo.get_earning_events(user_id)
        active_days = len({created_at.date() for created_at, _, _ in events})
        sources = len({source for _, source, _ in events})
        recent_cutoff = now - timedelta(days=30)
        recent_events = sum(1 for created_at, _, _ in events if created_at >= recent_cutoff)
        account_age = user.account_age_days(now)
        risk = await self.assess_risk(user_id, RiskContext(action="pioneer_badge"), now=now)

        criteria = [
            ("account_age", "Keep your account active for at least 7 days",
             account_age, self.settings.NEW_ACCOUNT_DAYS),
            ("active_days", "Earn SoftPoints on at least 10 different days",
             active_days, MIN_ACTIVE_DAYS),
            ("earning_sources", "Earn from at least 3 different activity types",
             sources, MIN_DISTINCT_SOURCES),
            ("recent_activity", "Complete at least 10 earning activities in the last 30 days",
             recent_events, MIN_RECENT_EVENTS),
        ]

        score = 0
        improvements: List[Improvement] = []
        for category, description, current, target in criteria:
            if current >= target:
                score += QUALITY_CRITERION_WEIGHT
            else:
                improvements.append(
                    Improvement(
                        category=category,
                        description=description,
                        weight=QUALITY_CRITERION_WEIGHT,
                        current_value=current,
                        target_value=target,
                    )
                )

        if risk.risk_level == RiskLevel.LOW:
            score += QUALITY_CRITERION_WEIGHT
        else:
            improvements.append(
                Improvement(
                    category="account_security",
                    description="Resolve recent security flags on your account",
                    weight=QUALITY_CRITERION_WEIGHT,
                    current_value=risk.risk_score,
                    target_value=0,
                )
            )

        metrics: Dict[str, Any] = {
            "account_age_days": account_age,
            "active_days": active_days,
            "earning_sources": sources,
            "recent_earning_events": recent_events,
            "risk_score": risk.risk_score,
        }
        return QualityScoreResponse(
            user_id=user_id, score=score, improvements=improvements, activity_metrics=metrics
        )

    async def get_pioneer_slots(self) -> PioneerSlotsResponse:
        awarded = await self.events_repo.count_badges()
        total = self.settings.MAX_PIONEER_BADGES
        return PioneerSlotsResponse(
            total_slots=total,
            awarded_slots=awarded,
            remaining_slots=max(0, total - awarded),
            next_badge_number=awarded + 1,
        )

    async def check_pioneer_eligibility(
        self, user_id: int, now: Optional[datetime] = None
    ) -> PioneerEligibilityResponse:
        required = self.settings.MIN_PIONEER_ELIGIBILITY_SCORE
        badge = await self.events_repo.get_badge(user_id)
        if badge is not None:
            return PioneerEligibilityResponse(
                is_eligible=False,
                has_badge=True,
                current_score=badge.eligibility_score,
                required_score=required,
                remaining_slots=0,
                badge_number=badge.badge_number,
            )

        slots = await self.get_pioneer_slots()
        if slots.remaining_slots <= 0:
            return PioneerEligibilityResponse(
                is_eligible=False,
                has_badge=False,
                current_score=0,
                required_score=required,
                remaining_slots=0,
                improvements=[
                    Improvement(
                        category="availability",
                        description=f"All {slots.total_slots} Pioneer Badges have been awarded",
                        weight=100,
                        current_value=slots.awarded_slots,
                        target_value=slots.total_slots,
                    )
                ],
            )

        quality = await self.get_quality_score(user_id, now=now)
        return PioneerEligibilityResponse(
            is_eligible=quality.score >= required,
            has_badge=False,
            current_score=quality.score,
            required_score=required,
            remaining_slots=slots.remaining_slots,
            improvements=quality.improvements,
        )

    async def claim_pioneer_badge(
        self, user_id: int, now: Optional[datetime] = None
    ) -> PioneerBadgeResponse:
        """자격이 되면 다음 배지 번호를 부여"""
        eligibility = await self.check_pioneer_eligibility(user_id, now=now)
        if eligibility.has_badge:
            raise ConflictError(
                "Pioneer badge already awarded",
                details={"badge_number": eligibility.badge_number},
            )
        if not eligibility.is_eligible:
            raise ValidationError(
                "Not eligible for a pioneer badge",
                details={
                    "current_score": eligibility.current_score,
                    "required_score": eligibility.required_score,
                    "remaining_slots": eligibility.remaining_slots,
                },
            )

        quality = await self.get_quality_score(user_id, now=now)
        badge_number = await self.events_repo.count_badges() + 1
        if badge_number > self.settings.MAX_PIONEER_BADGES:
            raise ConflictError("All pioneer badges have been awarded")

        try:
            await self.events_repo.create_badge(
                user_id=user_id,
                badge_number=badge_number,
                eligibility_score=quality.score,
                activity_metrics=quality.activity_metrics,
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Pioneer badge {badge_number} claim collided for user {user_id}")
            raise ConflictError("Pioneer badge claim conflicted, please retry")

        logger.info(f"Awarded pioneer badge #{badge_number} to user {user_id}")
        return PioneerBadgeResponse(
            success=True,
            message=f"Congratulations! You are Pioneer #{badge_number}",
            badge_number=badge_number,
            eligibility_score=quality.score,
        )

    async def get_badge(self, user_id: int) -> PioneerBadgeInfo:
        badge = await self.events_repo.get_badge(user_id)
        if badge is None:
            raise NotFoundError("No pioneer badge found")
        return _badge_info(badge)

    async def get_leaderboard(self, limit: int = 100) -> PioneerLeaderboardResponse:
        rows = await self.events_repo.list_badges(limit)
        return PioneerLeaderboardResponse(
            badges=[_badge_info(badge, nickname) for badge, nickname in rows],
            total_count=await self.events_repo.count_badges(),
        )


def _badge_info(badge: PioneerBadge, nickname: Optional[str] = None) -> PioneerBadgeInfo:
    return PioneerBadgeInfo(
        user_id=badge.user_id,
        badge_number=badge.badge_number,
        eligibility_score=badge.eligibility_score,
        activity_metrics=badge.activity_metrics,
        earned_at=as_utc(badge.created_at),
        nickname=nickname,
    )
