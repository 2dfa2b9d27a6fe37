import asyncio
from datetime import timedelta
from typing import List, Optional, Tuple

import pytest
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from softpoints.config import Settings
from softpoints.core.exceptions import PayoutInitiationError
from softpoints.database.connection import create_all
from softpoints.models.base import utcnow
from softpoints.models.user import User, UserRole
from softpoints.services.balance_locks import UserLockRegistry
from softpoints.services.fraud_service import FraudService
from softpoints.services.payout_gateway import PayoutGateway
from softpoints.services.point_service import PointService
from softpoints.services.reward_service import RewardService
from softpoints.services.withdrawal_service import WithdrawalService


def run(coro):
    """동기 테스트에서 코루틴 실행"""
    return asyncio.run(coro)


class RecordingPublisher:
    """SQS 대신 발행된 이벤트를 기록"""

    def __init__(self):
        self.events: List[Tuple[str, BaseModel]] = []

    async def publish(self, channel: str, event: BaseModel) -> bool:
        self.events.append((channel, event))
        return True

    def publish_nowait(self, channel: str, event: BaseModel) -> None:
        self.events.append((channel, event))

    async def drain(self) -> None:
        return None

    def on(self, channel: str) -> List[BaseModel]:
        return [event for name, event in self.events if name == channel]


class FakePayoutGateway(PayoutGateway):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.initiated: List[int] = []

    async def initiate(self, withdrawal) -> None:
        if self.fail:
            raise PayoutInitiationError("Payout provider unavailable")
        self.initiated.append(withdrawal.id)


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        REDIS_ENABLED=False,
        REWARD_TIMEOUT_SECONDS=60.0,
        REWARD_MAX_RETRIES=1,
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'softpoints_test.db'}", poolclass=NullPool
    )
    run(create_all(engine))
    yield async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    run(engine.dispose())


@pytest.fixture
def locks():
    return UserLockRegistry()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def gateway():
    return FakePayoutGateway()


@pytest.fixture
def make_user(session_factory):
    """사용자 생성 헬퍼 (age_days 로 계정 나이 지정)"""

    def _make_user(
        user_id: int,
        age_days: int = 30,
        role: str = UserRole.USER.value,
        country: Optional[str] = None,
    ) -> int:
        async def _create():
            async with session_factory() as db:
                created = utcnow() - timedelta(days=age_days)
                db.add(
                    User(
                        id=user_id,
                        email=f"user{user_id}@example.com",
                        nickname=f"user{user_id}",
                        role=role,
                        country=country,
                        created_at=created,
                        updated_at=created,
                    )
                )
                await db.commit()
            return user_id

        return run(_create())

    return _make_user


class ServiceBundle:
    """같은 세션을 공유하는 서비스 묶음"""

    def __init__(self, db, locks, publisher, gateway, settings):
        self.db = db
        self.points = PointService(db, locks, settings=settings)
        self.fraud = FraudService(db, settings=settings)
        self.rewards = RewardService(db, self.points, publisher, settings=settings)
        self.withdrawals = WithdrawalService(
            db, self.points, self.fraud, gateway, publisher, settings=settings
        )


@pytest.fixture
def with_services(session_factory, locks, publisher, gateway, test_settings):
    """새 세션으로 서비스를 만들어 async 함수를 실행

    사용 예: with_services(lambda s: s.points.get_current_balance(1))
    """

    def _run(fn, payout_gateway=None, settings=None):
        async def _inner():
            async with session_factory() as db:
                bundle = ServiceBundle(
                    db,
                    locks,
                    publisher,
                    payout_gateway or gateway,
                    settings or test_settings,
                )
                return await fn(bundle)

        return run(_inner())

    return _run
