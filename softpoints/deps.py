from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.database.session import get_db

# Services
from softpoints.services.fraud_service import FraudService
from softpoints.services.point_service import PointService
from softpoints.services.reward_service import RewardService
from softpoints.services.withdrawal_service import WithdrawalService


def _services(request: Request):
    return request.app.container.services


def get_point_service(
    request: Request, db: AsyncSession = Depends(get_db)
) -> PointService:
    return _services(request).point_service(db=db)


def get_fraud_service(
    request: Request, db: AsyncSession = Depends(get_db)
) -> FraudService:
    return _services(request).fraud_service(db=db)


def get_reward_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    point_service: PointService = Depends(get_point_service),
) -> RewardService:
    return _services(request).reward_service(db=db, point_service=point_service)


def get_withdrawal_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    point_service: PointService = Depends(get_point_service),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> WithdrawalService:
    return _services(request).withdrawal_service(
        db=db, point_service=point_service, fraud_service=fraud_service
    )
