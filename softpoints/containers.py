from dependency_injector import containers, providers

from softpoints.config import settings
from softpoints.services.aws_service import AwsService
from softpoints.services.balance_locks import UserLockRegistry
from softpoints.services.event_publisher import EventPublisher
from softpoints.services.fraud_service import FraudService
from softpoints.services.payout_gateway import QueuePayoutGateway
from softpoints.services.point_service import PointService
from softpoints.services.redis_service import RedisService
from softpoints.services.reward_service import RewardService
from softpoints.services.withdrawal_service import WithdrawalService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Object(settings)


class InfrastructureModule(containers.DeclarativeContainer):
    """Process-wide singletons shared by every request."""

    config = providers.DependenciesContainer()

    lock_registry = providers.Singleton(UserLockRegistry)
    aws_service = providers.Singleton(AwsService, settings=config.config)
    event_publisher = providers.Singleton(
        EventPublisher, aws_service=aws_service, settings=config.config
    )
    payout_gateway = providers.Singleton(QueuePayoutGateway, publisher=event_publisher)
    redis_service = providers.Singleton(RedisService, settings=config.config)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies. `db` is supplied per request."""

    config = providers.DependenciesContainer()
    infra = providers.DependenciesContainer()

    point_service = providers.Factory(
        PointService,
        locks=infra.lock_registry,
        cache=infra.redis_service,
        settings=config.config,
    )
    fraud_service = providers.Factory(FraudService, settings=config.config)
    reward_service = providers.Factory(
        RewardService, publisher=infra.event_publisher, settings=config.config
    )
    withdrawal_service = providers.Factory(
        WithdrawalService,
        payout_gateway=infra.payout_gateway,
        publisher=infra.event_publisher,
        settings=config.config,
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    config = providers.Container(ConfigModule)
    infra = providers.Container(InfrastructureModule, config=config)
    services = providers.Container(ServiceModule, config=config, infra=infra)
