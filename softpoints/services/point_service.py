import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.config import Settings, settings as default_settings
from softpoints.core.exceptions import (
    BaseAPIException,
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from softpoints.models.base import utcnow
from softpoints.models.points import SourceType, TransactionType
from softpoints.repositories.points_repository import PointsRepository
from softpoints.repositories.user_repository import UserRepository
from softpoints.repositories.withdrawal_repository import WithdrawalRepository
from softpoints.schemas.points import (
    AdminPointsAdjustmentRequest,
    LedgerAppendResult,
    PointsAnalyticsResponse,
    PointsBalanceResponse,
    PointsIntegrityCheckResponse,
    PointsLedgerResponse,
    PointsTransactionResponse,
    PointsTransferRequest,
    PointsTransferResponse,
    TaxReportMonth,
    TaxReportResponse,
)
from softpoints.services.balance_locks import UserLockRegistry
from softpoints.services.redis_service import RedisService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}


class PointService:
    """포인트 원장/잔액 관련 비즈니스 로직을 담당하는 서비스

    모든 잔액 변경은 append_transaction 을 거치며, 사용자별 잠금 안에서
    원장 추가와 커밋이 함께 수행됩니다.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: UserLockRegistry,
        cache: Optional[RedisService] = None,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.locks = locks
        self.cache = cache
        self.settings = settings
        self.points_repo = PointsRepository(db)

    # ------------------------------------------------------------------
    # 잔액
    # ------------------------------------------------------------------

    def cash_value(self, points: int, currency: str = "USD") -> Decimal:
        rate = Decimal(self.settings.POINTS_PER_CURRENCY_UNIT[currency])
        return (Decimal(points) / rate).quantize(CENTS)

    async def get_current_balance(self, user_id: int) -> int:
        """원장 기준 현재 잔액 (캐시를 사용하지 않음)"""
        return await self.points_repo.get_current_balance(user_id)

    async def get_user_balance(self, user_id: int) -> PointsBalanceResponse:
        """사용자 포인트 잔액 조회 (세션 캐시 우선)"""
        cached = None
        if self.cache is not None:
            cached = await self.cache.get_cached_balance(user_id)

        if cached is not None:
            balance, from_cache = cached, True
        else:
            balance, from_cache = await self.get_current_balance(user_id), False
            if self.cache is not None:
                await self.cache.cache_balance(user_id, balance)

        logger.info(f"Retrieved balance for user {user_id}: {balance}")
        return PointsBalanceResponse(
            user_id=user_id,
            balance=balance,
            cash_value=str(self.cash_value(balance)),
            cached=from_cache,
        )

    async def invalidate_cached_balance(self, user_id: int) -> None:
        if self.cache is not None:
            await self.cache.invalidate_balance(user_id)

    async def end_session(self, user_id: int) -> None:
        """세션 종료 시 캐시된 잔액 제거"""
        await self.invalidate_cached_balance(user_id)
        logger.info(f"Cleared cached balance for user {user_id}")

    # ------------------------------------------------------------------
    # 원장 추가
    # ------------------------------------------------------------------

    async def append_transaction(
        self,
        user_id: int,
        transaction_type: Any,
        source_type: Any,
        amount: int,
        source_id: Optional[str] = None,
        content_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        allow_overdraft: bool = False,
    ) -> LedgerAppendResult:
        """원장 항목 추가 - 사용자 잠금 안에서 추가 후 커밋

        Returns:
            LedgerAppendResult: appended | duplicate | insufficient_balance
        """
        async with self.locks.lock(user_id):
            try:
                result = await self.points_repo.append(
                    user_id=user_id,
                    transaction_type=transaction_type,
                    source_type=source_type,
                    amount=amount,
                    source_id=source_id,
                    content_id=content_id,
                    description=description,
                    metadata=metadata,
                    allow_overdraft=allow_overdraft,
                )
                if result.applied:
                    await self.db.commit()
                else:
                    await self.db.rollback()
            except Exception:
                await self.db.rollback()
                raise

        if result.applied:
            await self.invalidate_cached_balance(user_id)
        return result

    async def admin_adjust_points(
        self, request: AdminPointsAdjustmentRequest, admin_id: int
    ) -> PointsTransactionResponse:
        """관리자 포인트 조정 (양수: 보너스, 음수: 페널티)"""
        if request.amount == 0:
            raise ValidationError("Adjustment amount must not be zero")

        transaction_type = (
            TransactionType.BONUS if request.amount > 0 else TransactionType.PENALTY
        )
        try:
            result = await self.append_transaction(
                user_id=request.user_id,
                transaction_type=transaction_type,
                source_type=SourceType.ADMIN,
                amount=request.amount,
                source_id=request.reference_id,
                description=f"Admin adjustment by {admin_id}: {request.reason}",
                metadata={"admin_id": admin_id},
            )
        except BaseAPIException:
            raise
        except Exception as e:
            logger.error(f"Failed admin adjustment for user {request.user_id}: {str(e)}")
            raise ValidationError(f"Failed to adjust points: {str(e)}")

        if result.status == "insufficient_balance":
            raise InsufficientBalanceError(
                details={"current_balance": result.balance_after, "amount": request.amount}
            )

        logger.info(
            f"Admin {admin_id} adjusted {request.amount} points for user {request.user_id}"
        )
        return PointsTransactionResponse(
            success=True,
            transaction_id=result.transaction.id if result.transaction else None,
            amount=request.amount,
            balance_after=result.balance_after,
            message=(
                "Adjustment already processed (idempotent)"
                if result.status == "duplicate"
                else "Adjustment completed successfully"
            ),
        )

    async def transfer_points(
        self, from_user_id: int, request: PointsTransferRequest
    ) -> PointsTransferResponse:
        """사용자 간 포인트 이체 - 두 원장 항목을 하나의 트랜잭션으로 기록"""
        if from_user_id == request.to_user_id:
            raise ValidationError("Cannot transfer points to yourself")

        recipient = await UserRepository(self.db).get_active_user(request.to_user_id)
        if recipient is None:
            raise NotFoundError("Recipient not found")

        description = request.note or f"Transfer {request.transfer_id}"
        # 이체 ID 는 보낸 사람 기준으로 고유 - 두 원장 항목이 같은 키를 공유
        transfer_key = f"{from_user_id}:{request.transfer_id}"
        async with self.locks.lock_many([from_user_id, request.to_user_id]):
            try:
                debit = await self.points_repo.append(
                    user_id=from_user_id,
                    transaction_type=TransactionType.TRANSFER,
                    source_type=SourceType.TRANSFER,
                    amount=-request.amount,
                    source_id=transfer_key,
                    description=description,
                    metadata={"to_user_id": request.to_user_id},
                )
                if debit.status == "insufficient_balance":
                    await self.db.rollback()
                    raise InsufficientBalanceError(
                        details={
                            "current_balance": debit.balance_after,
                            "amount": request.amount,
                        }
                    )
                if debit.status == "duplicate":
                    await self.db.rollback()
                    credit_row = await self.points_repo.get_by_dedup_key(
                        request.to_user_id, SourceType.TRANSFER, transfer_key
                    )
                    if credit_row is None or credit_row.amount != request.amount:
                        raise ConflictError(
                            f"Transfer ID {request.transfer_id} was already used for a different transfer"
                        )
                    return PointsTransferResponse(
                        success=True,
                        message="Transfer already processed (idempotent)",
                        debit=debit.transaction,
                        credit=self.points_repo._to_schema(credit_row),
                    )

                credit = await self.points_repo.append(
                    user_id=request.to_user_id,
                    transaction_type=TransactionType.TRANSFER,
                    source_type=SourceType.TRANSFER,
                    amount=request.amount,
                    source_id=transfer_key,
                    description=description,
                    metadata={"from_user_id": from_user_id},
                )
                if credit.status != "appended":
                    # 입금 누락 상태로 출금만 커밋되면 안 됨
                    await self.db.rollback()
                    raise ConflictError(
                        f"Transfer ID {request.transfer_id} could not be credited to user {request.to_user_id}"
                    )
                await self.db.commit()
            except BaseAPIException:
                raise
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    f"Transfer {request.transfer_id} from {from_user_id} failed: {str(e)}"
                )
                raise ValidationError(f"Failed to transfer points: {str(e)}")

        await self.invalidate_cached_balance(from_user_id)
        await self.invalidate_cached_balance(request.to_user_id)
        logger.info(
            f"Transferred {request.amount} points from {from_user_id} to {request.to_user_id}"
        )
        return PointsTransferResponse(
            success=True,
            message="Transfer completed successfully",
            debit=debit.transaction,
            credit=credit.transaction,
        )

    # ------------------------------------------------------------------
    # 조회 / 검증
    # ------------------------------------------------------------------

    async def get_user_ledger(
        self, user_id: int, limit: int = 50, offset: int = 0
    ) -> PointsLedgerResponse:
        """사용자 포인트 거래 내역 조회 (최신순)"""
        if limit > 100:
            limit = 100

        try:
            ledger = await self.points_repo.get_user_ledger(
                user_id=user_id, limit=limit, offset=offset
            )
            logger.info(
                f"Retrieved ledger for user {user_id}: {ledger.total_count} entries"
            )
            return ledger
        except Exception as e:
            logger.error(f"Failed to get ledger for user {user_id}: {str(e)}")
            raise ValidationError(f"Failed to retrieve ledger: {str(e)}")

    async def verify_user_integrity(self, user_id: int) -> PointsIntegrityCheckResponse:
        result = await self.points_repo.verify_integrity_for_user(user_id)
        if result.status != "OK":
            logger.error(f"Integrity mismatch for user {user_id}: {result.error}")
        return result

    async def verify_global_integrity(self) -> PointsIntegrityCheckResponse:
        result = await self.points_repo.verify_global_integrity()
        if result.status != "OK":
            logger.error(
                f"Global integrity mismatch: balances={result.total_balances} "
                f"amounts={result.total_amounts}"
            )
        return result

    async def get_analytics(
        self, user_id: int, period: str = "month", now: Optional[datetime] = None
    ) -> PointsAnalyticsResponse:
        """기간별 적립/사용 분석 (최근 1일/7일/30일/365일)"""
        if period not in PERIOD_DAYS:
            raise ValidationError(f"Unsupported period: {period}")

        period_end = now or utcnow()
        period_start = period_end - timedelta(days=PERIOD_DAYS[period])
        # 끝 경계는 배타적이므로 현재 시각의 항목까지 포함
        breakdown, count = await self.points_repo.get_source_breakdown(
            user_id, period_start, period_end + timedelta(microseconds=1)
        )
        total_earned = sum(item.earned for item in breakdown)
        total_spent = sum(item.spent for item in breakdown)

        return PointsAnalyticsResponse(
            user_id=user_id,
            period=period,
            period_start=period_start,
            period_end=period_end,
            total_earned=total_earned,
            total_spent=total_spent,
            net_change=total_earned - total_spent,
            transaction_count=count,
            by_source=breakdown,
        )

    async def get_tax_report(self, user_id: int, year: int) -> TaxReportResponse:
        """연간 세금 신고용 리포트 - 월별 수익 포인트와 완료된 출금"""
        if year < 2000 or year > 9998:
            raise ValidationError(f"Invalid year: {year}")

        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)

        monthly: Dict[int, int] = {month: 0 for month in range(1, 13)}
        for created_at, _source, amount in await self.points_repo.get_earning_events(
            user_id, start, end
        ):
            monthly[created_at.month] += amount

        withdrawals = await WithdrawalRepository(self.db).get_completed_in_range(
            user_id, start, end
        )
        total_withdrawn = sum((Decimal(w.amount) for w in withdrawals), Decimal("0"))
        total_fees = sum((Decimal(w.fee) for w in withdrawals), Decimal("0"))
        total_points = sum(monthly.values())

        return TaxReportResponse(
            user_id=user_id,
            year=year,
            currency="USD",
            months=[
                TaxReportMonth(
                    month=month,
                    points_earned=points,
                    cash_value=str(self.cash_value(points)),
                )
                for month, points in monthly.items()
            ],
            total_points_earned=total_points,
            total_cash_value=str(self.cash_value(total_points)),
            completed_withdrawals=len(withdrawals),
            total_withdrawn=str(total_withdrawn.quantize(CENTS)),
            total_withdrawal_fees=str(total_fees.quantize(CENTS)),
        )
