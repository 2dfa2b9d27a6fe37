"""
Reward dispatcher: turns domain events from feature modules into ledger
entries using the earning rule table.

Every entry point is best effort. It never raises to the caller; failures are
logged, dead-lettered and returned as a ``Failed`` result so the triggering
action (a purchase, a view batch) is never affected.
"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytz
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.config import Settings, settings as default_settings
from softpoints.core.earning_rules import (
    EARNING_RULES_VERSION,
    compute_activity_bonus,
    compute_points,
)
from softpoints.models.points import SourceType, TransactionType
from softpoints.providers.queue.events import (
    NotificationEvent,
    RewardDeadLetterEvent,
    WalletSyncEvent,
)
from softpoints.schemas.points import PointsTransactionEntry
from softpoints.schemas.rewards import (
    ActivityEvent,
    Awarded,
    BatchRewardResponse,
    Failed,
    NotAuthenticated,
    RewardResult,
    Skipped,
    TrackActivityRequest,
    TrackPurchaseRequest,
    TrackReferralRequest,
    TrackSubscriptionRequest,
    TrackTipRequest,
    TrackVideoViewRequest,
)
from softpoints.services.event_publisher import (
    NOTIFICATION,
    REWARD_DEADLETTER,
    WALLET_SYNC,
    EventPublisher,
)
from softpoints.services.point_service import PointService

logger = logging.getLogger(__name__)


class RewardService:
    def __init__(
        self,
        db: AsyncSession,
        point_service: PointService,
        publisher: EventPublisher,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.point_service = point_service
        self.publisher = publisher
        self.settings = settings

    # ------------------------------------------------------------------
    # 공통 지급 로직
    # ------------------------------------------------------------------

    async def _award(
        self,
        user_id: int,
        source_type: SourceType,
        points: int,
        source_id: str,
        transaction_type: TransactionType = TransactionType.EARNED,
        content_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        notify: bool = True,
    ) -> RewardResult:
        if points <= 0:
            return Skipped(reason=f"No points earned for {source_type.value}")

        audit = {"rules_version": EARNING_RULES_VERSION}
        audit.update(metadata or {})

        attempts = 1 + max(0, self.settings.REWARD_MAX_RETRIES)
        last_error = ""
        result = None
        for attempt in range(1, attempts + 1):
            try:
                result = await asyncio.wait_for(
                    self.point_service.append_transaction(
                        user_id=user_id,
                        transaction_type=transaction_type,
                        source_type=source_type,
                        amount=points,
                        source_id=source_id,
                        content_id=content_id,
                        description=description,
                        metadata=audit,
                    ),
                    timeout=self.settings.REWARD_TIMEOUT_SECONDS,
                )
                break
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.settings.REWARD_TIMEOUT_SECONDS}s"
            except Exception as e:
                last_error = str(e) or type(e).__name__
            logger.warning(
                f"Reward attempt {attempt}/{attempts} failed for user {user_id} "
                f"({source_type.value}:{source_id}, {points} points): {last_error}"
            )
            await self._reset_session()

        if result is None:
            logger.error(
                f"Reward dropped: user_id={user_id} source_type={source_type.value} "
                f"source_id={source_id} amount={points} attempts={attempts} error={last_error}"
            )
            self.publisher.publish_nowait(
                REWARD_DEADLETTER,
                RewardDeadLetterEvent(
                    user_id=user_id,
                    source_type=source_type.value,
                    source_id=source_id,
                    amount=points,
                    error=last_error,
                    attempts=attempts,
                ),
            )
            return Failed(reason="Reward could not be recorded")

        transaction = result.transaction
        if result.status == "duplicate" and transaction is not None:
            return self._awarded(transaction, duplicate=True)
        if transaction is None:
            return Failed(reason=f"Ledger rejected reward: {result.status}")

        wallet_bonus = self._wallet_bonus(transaction.source_type)
        self._publish_wallet_sync(transaction, wallet_bonus)
        if notify:
            self._publish_notification(user_id, transaction.amount, wallet_bonus=wallet_bonus)
        logger.info(
            f"Awarded {transaction.amount} points to user {user_id} "
            f"for {source_type.value}:{source_id}"
        )
        return self._awarded(transaction)

    async def _reset_session(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            logger.warning(f"Rollback after failed reward attempt failed: {e}")

    def _wallet_bonus(self, source_type: str) -> Optional[Decimal]:
        bonus = self.settings.WALLET_BONUS_BY_SOURCE.get(source_type)
        return bonus if bonus and bonus > 0 else None

    def _awarded(self, transaction: PointsTransactionEntry, duplicate: bool = False) -> Awarded:
        return Awarded(
            soft_points=transaction.amount,
            wallet_bonus=self._wallet_bonus(transaction.source_type),
            transaction_id=transaction.id,
            balance_after=transaction.balance_after,
            source_type=transaction.source_type,
            duplicate=duplicate,
        )

    def _publish_notification(
        self,
        user_id: int,
        points: int,
        title: str = "SoftPoints earned",
        wallet_bonus: Optional[Decimal] = None,
    ) -> None:
        message = f"+{points} SoftPoints"
        data: Dict[str, Any] = {}
        if wallet_bonus is not None:
            message += f" + {wallet_bonus} wallet bonus"
            data["wallet_bonus"] = str(wallet_bonus)
        self.publisher.publish_nowait(
            NOTIFICATION,
            NotificationEvent(
                user_id=user_id,
                title=title,
                message=message,
                points=points,
                data=data,
            ),
        )

    def _publish_wallet_sync(
        self, transaction: PointsTransactionEntry, wallet_bonus: Optional[Decimal] = None
    ) -> None:
        self.publisher.publish_nowait(
            WALLET_SYNC,
            WalletSyncEvent(
                user_id=transaction.user_id,
                balance=transaction.balance_after,
                delta=transaction.amount,
                transaction_id=transaction.id,
                source_type=transaction.source_type,
                deduplication_id=f"points-{transaction.id}",
                wallet_bonus=wallet_bonus,
            ),
        )

    # ------------------------------------------------------------------
    # 도메인 이벤트별 진입점
    # ------------------------------------------------------------------

    async def track_video_view(
        self, user_id: Optional[int], request: TrackVideoViewRequest, notify: bool = True
    ) -> RewardResult:
        """조회수 집계 배치 보상 (1000회당 5포인트)"""
        if user_id is None:
            return NotAuthenticated()
        points = compute_points(SourceType.VIEWS, request.views)
        return await self._award(
            user_id,
            SourceType.VIEWS,
            points,
            source_id=request.event_id or f"{request.video_id}:{request.views}",
            content_id=request.video_id,
            description=f"{request.views} views on video {request.video_id}",
            metadata={"views": request.views},
            notify=notify,
        )

    async def track_tip(
        self, user_id: Optional[int], request: TrackTipRequest, notify: bool = True
    ) -> RewardResult:
        if user_id is None:
            return NotAuthenticated()
        return await self._award(
            user_id,
            SourceType.TIPS,
            compute_points(SourceType.TIPS, request.count),
            source_id=request.tip_id,
            content_id=request.content_id,
            description="Tip received",
            notify=notify,
        )

    async def track_subscription(
        self, user_id: Optional[int], request: TrackSubscriptionRequest, notify: bool = True
    ) -> RewardResult:
        if user_id is None:
            return NotAuthenticated()
        return await self._award(
            user_id,
            SourceType.SUBSCRIPTIONS,
            compute_points(SourceType.SUBSCRIPTIONS, request.count),
            source_id=request.subscription_id,
            description="New subscription",
            notify=notify,
        )

    async def track_purchase(
        self, user_id: Optional[int], request: TrackPurchaseRequest, notify: bool = True
    ) -> RewardResult:
        """판매 보상 (₦1000당 10포인트, 판매자 기준)"""
        if user_id is None:
            return NotAuthenticated()
        return await self._award(
            user_id,
            SourceType.SALES,
            compute_points(SourceType.SALES, request.amount),
            source_id=request.order_id,
            content_id=request.product_id,
            description=f"Sale of order {request.order_id}",
            metadata={"order_amount": str(request.amount)},
            notify=notify,
        )

    async def track_referral(
        self, user_id: Optional[int], request: TrackReferralRequest, notify: bool = True
    ) -> RewardResult:
        if user_id is None:
            return NotAuthenticated()
        if request.referred_user_id == user_id:
            return Skipped(reason="Self-referral is not rewarded")
        return await self._award(
            user_id,
            SourceType.REFERRAL,
            compute_points(SourceType.REFERRAL, 1),
            source_id=str(request.referred_user_id),
            description="Successful referral",
            notify=notify,
        )

    def login_day(self, now: Optional[datetime] = None) -> str:
        """설정된 타임존 기준 달력 날짜 (YYYY-MM-DD)"""
        tz = pytz.timezone(self.settings.TIMEZONE)
        moment = now.astimezone(tz) if now is not None else datetime.now(tz)
        return moment.date().isoformat()

    async def track_daily_login(
        self, user_id: Optional[int], now: Optional[datetime] = None, notify: bool = True
    ) -> RewardResult:
        """일일 로그인 보상 - 하루 한 번 (날짜가 dedup key)"""
        if user_id is None:
            return NotAuthenticated()
        day = self.login_day(now)
        return await self._award(
            user_id,
            SourceType.DAILY_LOGIN,
            compute_points(SourceType.DAILY_LOGIN, 1),
            source_id=day,
            transaction_type=TransactionType.BONUS,
            description=f"Daily login {day}",
            notify=notify,
        )

    async def track_activity(
        self, user_id: Optional[int], request: TrackActivityRequest, notify: bool = True
    ) -> RewardResult:
        """게시물/좋아요/댓글/공유 등 참여 보너스"""
        if user_id is None:
            return NotAuthenticated()
        try:
            points = compute_activity_bonus(request.activity)
        except ValueError as e:
            return Failed(reason=str(e))
        return await self._award(
            user_id,
            SourceType.BONUS,
            points,
            source_id=f"{request.activity}:{request.target_id}",
            transaction_type=TransactionType.BONUS,
            content_id=request.target_id,
            description=f"Activity bonus: {request.activity}",
            metadata={"activity": request.activity},
            notify=notify,
        )

    async def _dispatch(self, user_id: int, event: ActivityEvent) -> RewardResult:
        if event.kind == "daily_login":
            return await self.track_daily_login(user_id, notify=False)

        payload = getattr(event, event.kind)
        if payload is None:
            return Failed(reason=f"Missing payload for {event.kind}")

        handler = {
            "video_view": self.track_video_view,
            "tip": self.track_tip,
            "subscription": self.track_subscription,
            "purchase": self.track_purchase,
            "referral": self.track_referral,
            "activity": self.track_activity,
        }[event.kind]
        return await handler(user_id, payload, notify=False)

    async def track_batch(
        self, user_id: Optional[int], activities: List[ActivityEvent]
    ) -> BatchRewardResponse:
        """여러 활동을 독립적으로 처리하고 합계 알림을 한 번만 발송"""
        if user_id is None:
            results: List[RewardResult] = [NotAuthenticated() for _ in activities]
            return BatchRewardResponse(
                results=results, total_points=0, awarded_count=0, failed_count=0
            )

        results = []
        for event in activities:
            try:
                result = await self._dispatch(user_id, event)
            except Exception as e:
                logger.error(f"Batch entry {event.kind} failed for user {user_id}: {e}")
                await self._reset_session()
                result = Failed(reason=str(e) or type(e).__name__)
            results.append(result)

        fresh = [r for r in results if isinstance(r, Awarded) and not r.duplicate]
        total_points = sum(r.soft_points for r in fresh)
        if total_points > 0:
            self._publish_notification(
                user_id, total_points, title=f"{len(fresh)} rewards earned"
            )

        return BatchRewardResponse(
            results=results,
            total_points=total_points,
            awarded_count=len(fresh),
            failed_count=sum(1 for r in results if isinstance(r, Failed)),
        )
