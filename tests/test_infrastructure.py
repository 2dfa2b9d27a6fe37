import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from softpoints.config import Settings
from softpoints.core.exceptions import (
    AuthenticationError,
    PayoutInitiationError,
    QueueDeliveryError,
)
from softpoints.core.security import create_access_token, decode_access_token
from softpoints.models.points import SourceType, TransactionType
from softpoints.models.withdrawal import WithdrawalRequest
from softpoints.providers.queue.events import NotificationEvent, WalletSyncEvent
from softpoints.services.balance_locks import UserLockRegistry
from softpoints.services.event_publisher import (
    NOTIFICATION,
    WALLET_SYNC,
    EventPublisher,
)
from softpoints.services.payout_gateway import QueuePayoutGateway
from softpoints.services.point_service import PointService
from softpoints.services.redis_service import RedisService

from conftest import run


class FakeAwsService:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.fifo = []

    def send_sqs_message(self, queue_url, message_body, delay_seconds=0):
        if self.fail:
            raise QueueDeliveryError("SQS unavailable")
        self.sent.append((queue_url, message_body))
        return {"MessageId": "1"}

    def send_sqs_fifo_message(
        self, queue_url, message_body, message_group_id, message_deduplication_id=None
    ):
        self.fifo.append((queue_url, message_group_id, message_deduplication_id))
        return {"MessageId": "2"}


class DictCache:
    def __init__(self):
        self.values = {}

    async def get_cached_balance(self, user_id):
        return self.values.get(user_id)

    async def cache_balance(self, user_id, balance):
        self.values[user_id] = balance
        return True

    async def invalidate_balance(self, user_id):
        return self.values.pop(user_id, None) is not None


def queue_settings(**overrides):
    values = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "SQS_NOTIFICATION_QUEUE_URL": "https://sqs.local/notifications",
        "SQS_WALLET_SYNC_QUEUE_URL": "https://sqs.local/wallet-sync.fifo",
    }
    values.update(overrides)
    return Settings(**values)


def notification():
    return NotificationEvent(user_id=1, title="SoftPoints earned", message="+5 SoftPoints")


class TestEventPublisher:
    """SQS 이벤트 발행 테스트"""

    def test_standard_queue(self):
        aws = FakeAwsService()
        publisher = EventPublisher(aws, queue_settings())

        delivered = run(publisher.publish(NOTIFICATION, notification()))

        assert delivered is True
        assert aws.sent[0][0] == "https://sqs.local/notifications"
        assert '"message":"+5 SoftPoints"' in aws.sent[0][1]

    def test_fifo_queue_groups_by_user(self):
        aws = FakeAwsService()
        publisher = EventPublisher(aws, queue_settings())
        event = WalletSyncEvent(
            user_id=7,
            balance=15,
            delta=5,
            transaction_id=3,
            source_type="tips",
            deduplication_id="points-3",
        )

        assert run(publisher.publish(WALLET_SYNC, event)) is True
        assert aws.fifo == [("https://sqs.local/wallet-sync.fifo", "7", "points-3")]
        assert aws.sent == []

    def test_missing_queue_is_skipped(self):
        aws = FakeAwsService()
        publisher = EventPublisher(aws, queue_settings(SQS_NOTIFICATION_QUEUE_URL=None))
        assert run(publisher.publish(NOTIFICATION, notification())) is False
        assert aws.sent == []

    def test_delivery_failure_does_not_raise(self):
        publisher = EventPublisher(FakeAwsService(fail=True), queue_settings())
        assert run(publisher.publish(NOTIFICATION, notification())) is False

    def test_publish_nowait_then_drain(self):
        aws = FakeAwsService()
        publisher = EventPublisher(aws, queue_settings())

        async def scenario():
            for _ in range(3):
                publisher.publish_nowait(NOTIFICATION, notification())
            await publisher.drain()
            return publisher.pending

        assert run(scenario()) == 0
        assert len(aws.sent) == 3


class TestPayoutGateway:
    def withdrawal(self):
        return WithdrawalRequest(
            id=11,
            user_id=1,
            amount=Decimal("5.00"),
            net_amount=Decimal("4.50"),
            currency="USD",
            payout_method="bank_transfer",
            payment_details={"account_number": "0123456789"},
        )

    def test_queues_payout(self):
        aws = FakeAwsService()
        gateway = QueuePayoutGateway(
            EventPublisher(aws, queue_settings(SQS_PAYOUT_QUEUE_URL="https://sqs.local/payouts"))
        )
        run(gateway.initiate(self.withdrawal()))
        assert aws.sent[0][0] == "https://sqs.local/payouts"

    def test_unconfigured_payout_queue_raises(self):
        # 기본 설정(SQS_PAYOUT_QUEUE_URL=None)에서는 출금이 환불 경로로 감
        assert queue_settings().SQS_PAYOUT_QUEUE_URL is None
        gateway = QueuePayoutGateway(EventPublisher(FakeAwsService(), queue_settings()))
        with pytest.raises(PayoutInitiationError):
            run(gateway.initiate(self.withdrawal()))

    def test_failed_send_raises(self):
        aws = FakeAwsService(fail=True)
        gateway = QueuePayoutGateway(
            EventPublisher(aws, queue_settings(SQS_PAYOUT_QUEUE_URL="https://sqs.local/payouts"))
        )
        with pytest.raises(PayoutInitiationError):
            run(gateway.initiate(self.withdrawal()))


class TestUserLockRegistry:
    def test_serializes_same_user(self):
        locks = UserLockRegistry()
        order = []

        async def worker(name):
            async with locks.lock(1):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        async def scenario():
            await asyncio.gather(worker("a"), worker("b"))

        run(scenario())

        assert order == ["a-start", "a-end", "b-start", "b-end"]
        assert len(locks) == 0

    def test_lock_many_in_any_order(self):
        locks = UserLockRegistry()

        async def transfer(ids):
            async with locks.lock_many(ids):
                await asyncio.sleep(0)

        async def scenario():
            forward = [transfer([1, 2]) for _ in range(5)]
            backward = [transfer([2, 1]) for _ in range(5)]
            await asyncio.wait_for(asyncio.gather(*forward, *backward), timeout=5)

        run(scenario())
        assert len(locks) == 0


class TestBalanceCache:
    def test_read_back_and_invalidate(self, session_factory, locks, test_settings, make_user):
        make_user(1)
        cache = DictCache()

        async def scenario():
            async with session_factory() as db:
                points = PointService(db, locks, cache=cache, settings=test_settings)
                await points.append_transaction(
                    user_id=1,
                    transaction_type=TransactionType.EARNED,
                    source_type=SourceType.TIPS,
                    amount=3,
                    source_id="tip-1",
                )
                first = await points.get_user_balance(1)
                second = await points.get_user_balance(1)
                await points.end_session(1)
                return first, second

        first, second = run(scenario())

        assert first.balance == 3 and first.cached is False
        assert second.balance == 3 and second.cached is True
        assert first.cash_value == "0.03"
        assert cache.values == {}

    def test_disabled_redis_is_a_no_op(self, test_settings):
        service = RedisService(test_settings)

        async def scenario():
            return (
                await service.cache_balance(1, 10),
                await service.get_cached_balance(1),
                await service.invalidate_balance(1),
            )

        assert run(scenario()) == (False, None, False)


class TestAccessToken:
    def test_round_trip(self):
        token = create_access_token({"user_id": 5, "sub": "user5@example.com"})
        payload = decode_access_token(token)
        assert payload.user_id == 5

    def test_expired(self):
        token = create_access_token({"user_id": 5}, expires_in=timedelta(seconds=-1))
        with pytest.raises(AuthenticationError):
            decode_access_token(token)
