"""
Spend / withdrawal gate.

A withdrawal debits points and creates the request in one DB transaction
under the user's lock. Payout initiation happens after commit; if it fails
the points are credited back with a ``refund`` entry keyed ``<id>:refund``
so the compensation is applied at most once.
"""

import logging
from datetime import timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.config import Settings, settings as default_settings
from softpoints.core.exceptions import (
    BaseAPIException,
    ConflictError,
    NotFoundError,
    PayoutInitiationError,
    ValidationError,
)
from softpoints.models.base import utcnow
from softpoints.models.points import SourceType, TransactionType
from softpoints.models.security import SecurityEventType
from softpoints.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from softpoints.providers.queue.events import NotificationEvent, WalletSyncEvent
from softpoints.repositories.withdrawal_repository import (
    InvalidTransitionError,
    WithdrawalRepository,
)
from softpoints.schemas.fraud import RiskContext, SecurityEventCreate
from softpoints.schemas.points import PointsTransactionEntry
from softpoints.schemas.withdrawal import (
    BoostRequest,
    BoostResponse,
    WithdrawalEntry,
    WithdrawalHistoryResponse,
    WithdrawalRequestCreate,
    WithdrawalResponse,
)
from softpoints.services.event_publisher import NOTIFICATION, WALLET_SYNC, EventPublisher
from softpoints.services.fraud_service import FraudService
from softpoints.services.payout_gateway import PayoutGateway
from softpoints.services.point_service import PointService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
RESTRICTED_MESSAGE = "Action temporarily restricted"

# boost_type: (cost in points, duration in hours)
BOOST_PRICES = {
    "basic": (100, 24),
    "premium": (250, 72),
    "featured": (500, 168),
}


class WithdrawalService:
    def __init__(
        self,
        db: AsyncSession,
        point_service: PointService,
        fraud_service: FraudService,
        payout_gateway: PayoutGateway,
        publisher: EventPublisher,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.point_service = point_service
        self.fraud_service = fraud_service
        self.payout_gateway = payout_gateway
        self.publisher = publisher
        self.settings = settings
        self.withdrawal_repo = WithdrawalRepository(db)

    # ------------------------------------------------------------------
    # 계산
    # ------------------------------------------------------------------

    def calculate_fee(self, amount: Decimal) -> Decimal:
        """수수료 = max(금액 × 2%, 0.50), 소수점 둘째 자리"""
        fee = (Decimal(amount) * Decimal(self.settings.WITHDRAWAL_FEE_RATE)).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )
        return max(fee, Decimal(self.settings.WITHDRAWAL_MIN_FEE).quantize(CENTS))

    def points_required(self, amount: Decimal, currency: str) -> int:
        rate = self.settings.POINTS_PER_CURRENCY_UNIT[currency.upper()]
        return int((Decimal(amount) * rate).to_integral_value(rounding=ROUND_CEILING))

    def _rate_for(self, currency: Optional[str]) -> Optional[int]:
        if not currency:
            return None
        return self.settings.POINTS_PER_CURRENCY_UNIT.get(currency.upper())

    # ------------------------------------------------------------------
    # 출금
    # ------------------------------------------------------------------

    async def validate_withdrawal_request(
        self, user_id: int, request: WithdrawalRequestCreate
    ) -> List[str]:
        """모든 검증 오류를 순서대로 반환 (빈 리스트면 유효)"""
        errors: List[str] = []
        amount = request.amount
        rate = self._rate_for(request.currency)

        if amount <= 0:
            errors.append("Withdrawal amount must be greater than zero")

        if amount > 0 and rate is not None:
            balance = await self.point_service.get_current_balance(user_id)
            if self.points_required(amount, request.currency) > balance:
                available = (Decimal(balance) / rate).quantize(CENTS)
                errors.append(
                    f"Insufficient balance: {balance} SoftPoints ({available} {request.currency.upper()}) available"
                )

        minimum = Decimal(self.settings.WITHDRAWAL_MIN_AMOUNT)
        if amount < minimum:
            errors.append(f"Minimum withdrawal amount is {minimum.quantize(CENTS)}")

        if not request.payout_method or not request.payout_method.strip():
            errors.append("Payout method is required")

        if not request.payment_details:
            errors.append("Payment details are required")

        if rate is None:
            errors.append(f"Unsupported currency: {request.currency}")

        return errors

    async def request_withdrawal(
        self,
        user_id: int,
        request: WithdrawalRequestCreate,
        context: Optional[RiskContext] = None,
    ) -> WithdrawalResponse:
        errors = await self.validate_withdrawal_request(user_id, request)
        if errors:
            return WithdrawalResponse(
                success=False,
                status="rejected",
                message="Withdrawal request is invalid",
                errors=errors,
            )

        currency = request.currency.upper()
        risk_context = RiskContext(
            action="withdrawal",
            amount=request.amount,
            ip_address=context.ip_address if context else None,
            country=context.country if context else None,
        )
        assessment = await self.fraud_service.assess_risk(user_id, risk_context)
        if self.fraud_service.is_blocked(assessment, "withdrawal", request.amount):
            logger.warning(
                f"Withdrawal blocked for user {user_id}: {assessment.reasons}"
            )
            return WithdrawalResponse(
                success=False,
                status="restricted",
                message=RESTRICTED_MESSAGE,
                errors=assessment.reasons,
                blocked_actions=assessment.blocked_actions,
            )

        amount = Decimal(request.amount).quantize(CENTS)
        fee = self.calculate_fee(amount)
        net_amount = amount - fee
        points = self.points_required(amount, currency)

        async with self.point_service.locks.lock(user_id):
            try:
                withdrawal = await self.withdrawal_repo.create_request(
                    user_id=user_id,
                    amount=amount,
                    currency=currency,
                    payout_method=request.payout_method,
                    payment_details=request.payment_details,
                    fee=fee,
                    net_amount=net_amount,
                    points_debited=points,
                )
                debit = await self.point_service.points_repo.append(
                    user_id=user_id,
                    transaction_type=TransactionType.SPENT,
                    source_type=SourceType.WITHDRAWAL,
                    amount=-points,
                    source_id=str(withdrawal.id),
                    description=f"Withdrawal {amount} {currency}",
                    metadata={"withdrawal_id": withdrawal.id, "fee": str(fee)},
                )
                if debit.status != "appended":
                    await self.db.rollback()
                    return WithdrawalResponse(
                        success=False,
                        status="rejected",
                        message="Withdrawal request is invalid",
                        errors=["Insufficient balance"],
                    )
                # 출금이 실제로 기록될 때만 이벤트를 남김 (같은 트랜잭션)
                await self.fraud_service.record_security_event(
                    user_id,
                    SecurityEventCreate(
                        event_type=SecurityEventType.WITHDRAWAL_REQUEST.value,
                        ip_address=risk_context.ip_address,
                        country=risk_context.country,
                    ),
                    commit=False,
                )
                await self.withdrawal_repo.transition(
                    withdrawal,
                    WithdrawalStatus.PROCESSING,
                    debit_transaction_id=debit.transaction.id,
                )
                await self.db.commit()
            except BaseAPIException:
                raise
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Withdrawal for user {user_id} failed before payout: {str(e)}")
                raise ValidationError(f"Failed to create withdrawal: {str(e)}")

        await self.point_service.invalidate_cached_balance(user_id)
        self._publish_wallet_sync(debit.transaction)
        logger.info(
            f"Withdrawal {withdrawal.id} created for user {user_id}: "
            f"{amount} {currency}, fee {fee}, {points} points"
        )

        response = WithdrawalResponse(
            success=True,
            status="processing",
            message="Withdrawal is being processed",
            withdrawal_id=withdrawal.id,
            amount=amount,
            currency=currency,
            fee=fee,
            net_amount=net_amount,
            points_debited=points,
            balance_after=debit.balance_after,
        )

        try:
            await self.payout_gateway.initiate(withdrawal)
        except PayoutInitiationError as e:
            logger.error(f"Payout initiation failed for withdrawal {withdrawal.id}: {e}")
            refunded = await self._refund(withdrawal.id, reason=str(e))
            response.success = False
            response.status = "failed"
            response.message = "Payout could not be initiated, points were refunded"
            response.balance_after = await self.point_service.get_current_balance(user_id)
            response.errors = [refunded.failure_reason or str(e)]

        return response

    async def _refund(self, withdrawal_id: int, reason: str) -> WithdrawalRequest:
        """출금 실패 처리 + 보상 크레딧 (한 번만 적용)"""
        withdrawal = await self.withdrawal_repo.get_model_by_id(withdrawal_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        user_id = withdrawal.user_id

        async with self.point_service.locks.lock(user_id):
            try:
                withdrawal = await self.withdrawal_repo.get_for_update(withdrawal_id)
                if withdrawal.status == WithdrawalStatus.FAILED.value:
                    return withdrawal

                refund = await self.point_service.points_repo.append(
                    user_id=user_id,
                    transaction_type=TransactionType.REFUND,
                    source_type=SourceType.WITHDRAWAL,
                    amount=withdrawal.points_debited,
                    source_id=f"{withdrawal.id}:refund",
                    description=f"Refund for withdrawal {withdrawal.id}",
                    metadata={"withdrawal_id": withdrawal.id, "reason": reason},
                )
                await self.withdrawal_repo.transition(
                    withdrawal,
                    WithdrawalStatus.FAILED,
                    failure_reason=reason,
                    refund_transaction_id=refund.transaction.id,
                )
                await self.db.commit()
            except InvalidTransitionError as e:
                await self.db.rollback()
                raise ConflictError(str(e))
            except Exception:
                await self.db.rollback()
                raise

        await self.point_service.invalidate_cached_balance(user_id)
        if refund.status == "appended":
            self._publish_wallet_sync(refund.transaction)
        logger.info(f"Refunded {withdrawal.points_debited} points for withdrawal {withdrawal.id}")
        return withdrawal

    async def complete_withdrawal(self, withdrawal_id: int) -> WithdrawalEntry:
        withdrawal = await self.withdrawal_repo.get_for_update(withdrawal_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        if withdrawal.status == WithdrawalStatus.COMPLETED.value:
            return self.withdrawal_repo._to_schema(withdrawal)

        try:
            await self.withdrawal_repo.transition(withdrawal, WithdrawalStatus.COMPLETED)
            await self.db.commit()
        except InvalidTransitionError as e:
            await self.db.rollback()
            raise ConflictError(str(e))

        self.publisher.publish_nowait(
            NOTIFICATION,
            NotificationEvent(
                user_id=withdrawal.user_id,
                kind="withdrawal_completed",
                title="Withdrawal completed",
                message=f"{withdrawal.net_amount} {withdrawal.currency} is on its way",
                data={"withdrawal_id": withdrawal.id},
            ),
        )
        logger.info(f"Withdrawal {withdrawal.id} completed")
        return self.withdrawal_repo._to_schema(withdrawal)

    async def fail_withdrawal(self, withdrawal_id: int, reason: str) -> WithdrawalEntry:
        withdrawal = await self._refund(withdrawal_id, reason=reason)
        return self.withdrawal_repo._to_schema(withdrawal)

    async def get_withdrawal_history(
        self, user_id: int, limit: int = 20, offset: int = 0
    ) -> WithdrawalHistoryResponse:
        limit = min(limit, 100)
        withdrawals, total = await self.withdrawal_repo.get_user_withdrawals(
            user_id, limit=limit, offset=offset
        )
        return WithdrawalHistoryResponse(
            withdrawals=withdrawals,
            total_count=total,
            has_next=offset + limit < total,
        )

    # ------------------------------------------------------------------
    # 부스트 구매
    # ------------------------------------------------------------------

    async def spend_soft_points_for_boost(
        self,
        user_id: int,
        request: BoostRequest,
        context: Optional[RiskContext] = None,
    ) -> BoostResponse:
        cost, hours = BOOST_PRICES[request.boost_type]

        assessment = await self.fraud_service.assess_risk(
            user_id,
            RiskContext(
                action="boost",
                country=context.country if context else None,
                ip_address=context.ip_address if context else None,
            ),
        )
        if self.fraud_service.is_blocked(assessment, "boost"):
            return BoostResponse(
                success=False,
                status="restricted",
                message=RESTRICTED_MESSAGE,
                cost_points=cost,
                blocked_actions=assessment.blocked_actions,
            )

        async with self.point_service.locks.lock(user_id):
            try:
                debit = await self.point_service.points_repo.append(
                    user_id=user_id,
                    transaction_type=TransactionType.SPENT,
                    source_type=SourceType.BOOST,
                    amount=-cost,
                    source_id=request.request_id,
                    content_id=request.content_id,
                    description=f"{request.boost_type.capitalize()} boost for {request.content_id}",
                    metadata={"boost_type": request.boost_type, "hours": hours},
                )
                if debit.status == "insufficient_balance":
                    await self.db.rollback()
                    return BoostResponse(
                        success=False,
                        status="rejected",
                        message="Insufficient SoftPoints balance",
                        cost_points=cost,
                        balance_after=debit.balance_after,
                    )
                if debit.status == "duplicate":
                    await self.db.rollback()
                    boost = await self.withdrawal_repo.get_boost_by_transaction(
                        debit.transaction.id
                    )
                    return BoostResponse(
                        success=True,
                        status="active",
                        message="Boost already purchased",
                        boost_id=boost.id if boost else None,
                        cost_points=-debit.transaction.amount,
                        balance_after=debit.transaction.balance_after,
                        ends_at=boost.ends_at if boost else None,
                    )

                starts_at = utcnow()
                boost = await self.withdrawal_repo.create_boost(
                    user_id=user_id,
                    content_id=request.content_id,
                    boost_type=request.boost_type,
                    cost_points=cost,
                    starts_at=starts_at,
                    ends_at=starts_at + timedelta(hours=hours),
                    transaction_id=debit.transaction.id,
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.point_service.invalidate_cached_balance(user_id)
        self._publish_wallet_sync(debit.transaction)
        logger.info(f"User {user_id} bought {request.boost_type} boost for {request.content_id}")
        return BoostResponse(
            success=True,
            status="active",
            message=f"{request.boost_type.capitalize()} boost active for {hours} hours",
            boost_id=boost.id,
            cost_points=cost,
            balance_after=debit.balance_after,
            ends_at=boost.ends_at,
        )

    def _publish_wallet_sync(self, transaction: PointsTransactionEntry) -> None:
        self.publisher.publish_nowait(
            WALLET_SYNC,
            WalletSyncEvent(
                user_id=transaction.user_id,
                balance=transaction.balance_after,
                delta=transaction.amount,
                transaction_id=transaction.id,
                source_type=transaction.source_type,
                deduplication_id=f"points-{transaction.id}",
            ),
        )
