import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from softpoints.config import Settings
from softpoints.repositories.points_repository import PointsRepository
from softpoints.schemas.rewards import (
    ActivityEvent,
    Awarded,
    Failed,
    NotAuthenticated,
    Skipped,
    TrackActivityRequest,
    TrackPurchaseRequest,
    TrackReferralRequest,
    TrackTipRequest,
    TrackVideoViewRequest,
)
from softpoints.services.event_publisher import NOTIFICATION, REWARD_DEADLETTER, WALLET_SYNC
from softpoints.services.point_service import PointService
from softpoints.services.reward_service import RewardService

from conftest import run


class TestRewardDispatcher:
    """보상 디스패처 테스트"""

    def test_unauthenticated_gets_no_points(self, with_services):
        result = with_services(
            lambda s: s.rewards.track_tip(None, TrackTipRequest(tip_id="tip-1"))
        )
        assert isinstance(result, NotAuthenticated)
        assert result.success is False
        assert result.soft_points == 0

    def test_video_views_award_and_notify(self, with_services, make_user, publisher):
        # Given
        make_user(1)
        request = TrackVideoViewRequest(video_id="vid-1", views=2500)

        # When
        result = with_services(lambda s: s.rewards.track_video_view(1, request))

        # Then
        assert isinstance(result, Awarded)
        assert result.success is True
        assert result.soft_points == 10
        assert result.balance_after == 10
        notifications = publisher.on(NOTIFICATION)
        assert len(notifications) == 1
        assert notifications[0].message == "+10 SoftPoints"
        assert len(publisher.on(WALLET_SYNC)) == 1

    def test_below_threshold_is_skipped(self, with_services, make_user, publisher):
        make_user(1)
        request = TrackVideoViewRequest(video_id="vid-1", views=999)
        result = with_services(lambda s: s.rewards.track_video_view(1, request))
        assert isinstance(result, Skipped)
        assert result.soft_points == 0
        assert publisher.events == []

    def test_same_event_awarded_once(self, with_services, make_user, publisher):
        # Given
        make_user(1)
        request = TrackPurchaseRequest(order_id="order-7", amount=Decimal("5000"))

        # When
        first = with_services(lambda s: s.rewards.track_purchase(1, request))
        second = with_services(lambda s: s.rewards.track_purchase(1, request))

        # Then
        assert first.soft_points == 50
        assert second.duplicate is True
        assert second.soft_points == 50
        assert second.transaction_id == first.transaction_id
        assert with_services(lambda s: s.points.get_current_balance(1)) == 50
        assert len(publisher.on(NOTIFICATION)) == 1

    def test_wallet_bonus_for_configured_source(self, with_services, make_user, publisher):
        # Given
        make_user(1)
        settings = Settings(
            DATABASE_URL="sqlite+aiosqlite://",
            WALLET_BONUS_BY_SOURCE={"sales": Decimal("0.05")},
        )
        request = TrackPurchaseRequest(order_id="order-9", amount=Decimal("1000"))

        # When
        result = with_services(
            lambda s: s.rewards.track_purchase(1, request), settings=settings
        )
        tip = with_services(
            lambda s: s.rewards.track_tip(1, TrackTipRequest(tip_id="tip-9")),
            settings=settings,
        )

        # Then
        assert result.wallet_bonus == Decimal("0.05")
        assert tip.wallet_bonus is None
        assert publisher.on(NOTIFICATION)[0].message == "+10 SoftPoints + 0.05 wallet bonus"
        assert publisher.on(WALLET_SYNC)[0].wallet_bonus == Decimal("0.05")
        assert publisher.on(WALLET_SYNC)[1].wallet_bonus is None

    def test_daily_login_once_per_local_day(self, with_services, make_user):
        make_user(1)
        # 23:30 UTC 는 Africa/Lagos(UTC+1) 기준 다음 날
        late = datetime(2024, 3, 1, 22, 30, tzinfo=timezone.utc)
        later = datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)

        first = with_services(lambda s: s.rewards.track_daily_login(1, now=late))
        again = with_services(lambda s: s.rewards.track_daily_login(1, now=late))
        next_day = with_services(lambda s: s.rewards.track_daily_login(1, now=later))

        assert first.soft_points == 5
        assert again.duplicate is True
        assert next_day.duplicate is False
        assert with_services(lambda s: s.points.get_current_balance(1)) == 10

    def test_self_referral_skipped(self, with_services, make_user):
        make_user(1)
        result = with_services(
            lambda s: s.rewards.track_referral(1, TrackReferralRequest(referred_user_id=1))
        )
        assert isinstance(result, Skipped)

    def test_activity_bonus(self, with_services, make_user):
        make_user(1)
        result = with_services(
            lambda s: s.rewards.track_activity(
                1, TrackActivityRequest(activity="create_post", target_id="post-1")
            )
        )
        assert result.soft_points == 10
        ledger = with_services(lambda s: s.points.get_user_ledger(1))
        assert ledger.entries[0].transaction_type == "bonus"
        assert ledger.entries[0].metadata["rules_version"]

    def test_unknown_activity_fails_without_raising(self, with_services, make_user):
        make_user(1)
        result = with_services(
            lambda s: s.rewards.track_activity(
                1, TrackActivityRequest(activity="juggling", target_id="x")
            )
        )
        assert isinstance(result, Failed)

    def test_persistence_failure_is_dead_lettered(
        self, with_services, make_user, publisher, monkeypatch
    ):
        # Given
        make_user(1)
        calls = {"count": 0}

        async def broken_append(self, **kwargs):
            calls["count"] += 1
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(PointService, "append_transaction", broken_append)

        # When
        result = with_services(
            lambda s: s.rewards.track_tip(1, TrackTipRequest(tip_id="tip-9"))
        )

        # Then
        assert isinstance(result, Failed)
        assert calls["count"] == 2  # 최초 시도 + 재시도 1회
        dead = publisher.on(REWARD_DEADLETTER)
        assert len(dead) == 1
        assert dead[0].user_id == 1
        assert dead[0].source_type == "tips"
        assert dead[0].amount == 1


class TestBatch:
    def test_partial_failure_keeps_successful_entries(self, with_services, make_user, publisher):
        # Given
        make_user(1)
        activities = [
            ActivityEvent(kind="tip", tip=TrackTipRequest(tip_id="t1")),
            ActivityEvent(kind="video_view"),  # payload 누락
            ActivityEvent(
                kind="purchase",
                purchase=TrackPurchaseRequest(order_id="o1", amount=Decimal("2000")),
            ),
            ActivityEvent(kind="daily_login"),
        ]

        # When
        result = with_services(lambda s: s.rewards.track_batch(1, activities))

        # Then
        assert [r.status for r in result.results] == ["awarded", "failed", "awarded", "awarded"]
        assert result.total_points == 1 + 20 + 5
        assert result.awarded_count == 3
        assert result.failed_count == 1
        assert with_services(lambda s: s.points.get_current_balance(1)) == 26
        notifications = publisher.on(NOTIFICATION)
        assert len(notifications) == 1
        assert notifications[0].points == 26

    def test_unauthenticated_batch(self, with_services):
        activities = [ActivityEvent(kind="daily_login")]
        result = with_services(lambda s: s.rewards.track_batch(None, activities))
        assert result.total_points == 0
        assert result.results[0].status == "not_authenticated"


class TestConcurrency:
    def test_concurrent_tips_do_not_lose_updates(
        self, session_factory, locks, publisher, test_settings, make_user
    ):
        # Given
        make_user(1)

        async def one_tip(i):
            async with session_factory() as db:
                points = PointService(db, locks, settings=test_settings)
                rewards = RewardService(db, points, publisher, settings=test_settings)
                return await rewards.track_tip(1, TrackTipRequest(tip_id=f"tip-{i}"))

        async def scenario():
            results = await asyncio.gather(*(one_tip(i) for i in range(100)))
            async with session_factory() as db:
                repo = PointsRepository(db)
                return (
                    results,
                    await repo.get_current_balance(1),
                    await repo.get_materialized_balance(1),
                    await repo.verify_integrity_for_user(1),
                )

        # When
        results, balance, materialized, integrity = run(scenario())

        # Then
        assert all(isinstance(r, Awarded) for r in results)
        assert balance == 100
        assert materialized == 100
        assert integrity.status == "OK"
        assert len(locks) == 0
