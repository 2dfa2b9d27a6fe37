"""
포인트 리포지토리 - 원장(Ledger) 및 잔액 테이블 접근

이 파일은 포인트 시스템의 저장소 계층을 담당합니다:
1. 원장 항목 추가 (잔액 원자적 증감 + 원장 INSERT 를 같은 DB 트랜잭션에서 수행)
2. 멱등성 보장 ((user_id, source_type, source_id) 중복 처리 방지)
3. 잔액 부족 검증 (조건부 차감)
4. 거래 내역 조회 / 분석 / 리포트용 집계
5. 데이터 정합성 검증

커밋은 호출자(서비스)의 몫입니다. 이 클래스의 메서드는 flush 까지만 수행합니다.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, asc, case, desc, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.models.base import as_utc, utcnow
from softpoints.models.points import (
    PointsBalance,
    PointsTransaction,
    TransactionType,
)
from softpoints.repositories.base import BaseRepository
from softpoints.schemas.points import (
    LedgerAppendResult,
    PointsIntegrityCheckResponse,
    PointsLedgerResponse,
    PointsTransactionEntry,
    SourceBreakdown,
)

# 수익으로 집계되는 거래 유형 (환불/이체 제외)
EARNING_TRANSACTION_TYPES = (TransactionType.EARNED.value, TransactionType.BONUS.value)


def _value(enum_or_str: Any) -> str:
    return str(getattr(enum_or_str, "value", enum_or_str))


class PointsRepository(BaseRepository[PointsTransaction, PointsTransactionEntry]):
    """
    포인트 리포지토리 - 포인트 관련 모든 데이터베이스 작업 처리

    주요 기능:
    1. 멱등성 보장 - dedup key 유니크 제약을 통한 중복 거래 방지
    2. 원자성 - 잔액 증감과 원장 기록이 하나의 트랜잭션
    3. 성능 최적화 - points_balances 로 O(1) 잔액 갱신
    4. 완전한 감사 추적 - 모든 포인트 변동 기록
    """

    def __init__(self, db: AsyncSession):
        super().__init__(PointsTransaction, PointsTransactionEntry, db)

    # ------------------------------------------------------------------
    # 잔액
    # ------------------------------------------------------------------

    async def get_current_balance(self, user_id: int) -> int:
        """최신 원장 항목의 balance_after (거래 내역이 없으면 0)"""
        result = await self.db.execute(
            select(PointsTransaction.balance_after)
            .where(PointsTransaction.user_id == user_id)
            .order_by(desc(PointsTransaction.created_at), desc(PointsTransaction.id))
            .limit(1)
        )
        balance = result.scalar_one_or_none()
        return int(balance) if balance is not None else 0

    async def get_materialized_balance(self, user_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(PointsBalance.balance).where(PointsBalance.user_id == user_id)
        )
        balance = result.scalar_one_or_none()
        return int(balance) if balance is not None else None

    def _insert_balance_row(self, user_id: int):
        dialect = postgresql if self.dialect_name == "postgresql" else sqlite
        return (
            dialect.insert(PointsBalance)
            .values(user_id=user_id, balance=0, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=[PointsBalance.user_id])
        )

    async def _increment_balance(
        self, user_id: int, amount: int, guard: bool
    ) -> Optional[int]:
        """잔액을 원자적으로 증감하고 새 잔액을 반환

        guard=True 이면 결과가 음수가 되는 경우 갱신하지 않고 None 을 반환합니다.
        """
        await self.db.execute(self._insert_balance_row(user_id))

        stmt = (
            update(PointsBalance)
            .where(PointsBalance.user_id == user_id)
            .values(balance=PointsBalance.balance + amount, updated_at=utcnow())
            .returning(PointsBalance.balance)
            .execution_options(synchronize_session=False)
        )
        if guard:
            stmt = stmt.where(PointsBalance.balance + amount >= 0)

        result = await self.db.execute(stmt)
        new_balance = result.scalar_one_or_none()
        return int(new_balance) if new_balance is not None else None

    # ------------------------------------------------------------------
    # 원장 추가
    # ------------------------------------------------------------------

    async def get_by_dedup_key(
        self, user_id: int, source_type: Any, source_id: Optional[str]
    ) -> Optional[PointsTransaction]:
        if source_id is None:
            return None
        result = await self.db.execute(
            select(PointsTransaction).where(
                and_(
                    PointsTransaction.user_id == user_id,
                    PointsTransaction.source_type == _value(source_type),
                    PointsTransaction.source_id == source_id,
                )
            )
        )
        return result.scalar_one_or_none()

    def _duplicate(self, existing: PointsTransaction) -> LedgerAppendResult:
        return LedgerAppendResult(
            status="duplicate",
            transaction=self._to_schema(existing),
            balance_after=existing.balance_after,
        )

    async def append(
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
        """
        원장 항목 추가의 핵심 로직

        핵심 로직:
        1. dedup key 중복 체크 (멱등성 보장)
        2. 잔액 행 upsert 후 UPDATE ... RETURNING 으로 원자적 증감
           (차감은 balance + amount >= 0 조건부)
        3. balance_before = 새 잔액 - amount 로 원장 기록
        4. 유니크 제약 위반 시 롤백 후 기존 항목 반환

        Note:
            IntegrityError 가 발생하면 호출자의 트랜잭션 전체가 롤백됩니다.
        """
        source_type = _value(source_type)
        transaction_type = _value(transaction_type)

        existing = await self.get_by_dedup_key(user_id, source_type, source_id)
        if existing is not None:
            return self._duplicate(existing)

        guard = amount < 0 and not allow_overdraft
        new_balance = await self._increment_balance(user_id, amount, guard=guard)
        if new_balance is None:
            current = await self.get_materialized_balance(user_id)
            return LedgerAppendResult(
                status="insufficient_balance",
                transaction=None,
                balance_after=current or 0,
            )

        entry = PointsTransaction(
            user_id=user_id,
            transaction_type=transaction_type,
            amount=amount,
            source_type=source_type,
            source_id=source_id,
            content_id=content_id,
            balance_before=new_balance - amount,
            balance_after=new_balance,
            description=description,
            extra_metadata=metadata,
            created_at=utcnow(),
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError:
            # 다른 프로세스가 같은 dedup key 로 먼저 커밋한 경우
            await self.db.rollback()
            existing = await self.get_by_dedup_key(user_id, source_type, source_id)
            if existing is None:
                raise
            return self._duplicate(existing)

        return LedgerAppendResult(
            status="appended",
            transaction=self._to_schema(entry),
            balance_after=new_balance,
        )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    async def count_user_entries(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(PointsTransaction.id)).where(
                PointsTransaction.user_id == user_id
            )
        )
        return int(result.scalar_one())

    async def get_user_ledger(
        self, user_id: int, limit: int = 50, offset: int = 0
    ) -> PointsLedgerResponse:
        """사용자 포인트 원장 조회 (페이징, 최신순)"""
        total_count = await self.count_user_entries(user_id)

        result = await self.db.execute(
            select(PointsTransaction)
            .where(PointsTransaction.user_id == user_id)
            .order_by(desc(PointsTransaction.created_at), desc(PointsTransaction.id))
            .limit(limit)
            .offset(offset)
        )
        entries = self._to_schemas(list(result.scalars().all()))

        return PointsLedgerResponse(
            balance=await self.get_current_balance(user_id),
            entries=entries,
            total_count=total_count,
            has_next=offset + limit < total_count,
            limit=limit,
            offset=offset,
        )

    async def get_source_breakdown(
        self, user_id: int, start: datetime, end: datetime
    ) -> Tuple[List[SourceBreakdown], int]:
        """기간 내 출처별 적립/사용 합계와 거래 건수"""
        earned = func.coalesce(
            func.sum(case((PointsTransaction.amount > 0, PointsTransaction.amount), else_=0)),
            0,
        )
        spent = func.coalesce(
            func.sum(case((PointsTransaction.amount < 0, -PointsTransaction.amount), else_=0)),
            0,
        )
        result = await self.db.execute(
            select(
                PointsTransaction.source_type,
                earned.label("earned"),
                spent.label("spent"),
                func.count(PointsTransaction.id).label("count"),
            )
            .where(
                and_(
                    PointsTransaction.user_id == user_id,
                    PointsTransaction.created_at >= start,
                    PointsTransaction.created_at < end,
                )
            )
            .group_by(PointsTransaction.source_type)
            .order_by(asc(PointsTransaction.source_type))
        )
        rows = result.all()
        breakdown = [
            SourceBreakdown(source_type=row.source_type, earned=int(row.earned), spent=int(row.spent))
            for row in rows
        ]
        return breakdown, sum(int(row.count) for row in rows)

    async def get_earning_events(
        self, user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[Tuple[datetime, str, int]]:
        """수익성 적립 항목 (created_at, source_type, amount) 목록"""
        conditions = [
            PointsTransaction.user_id == user_id,
            PointsTransaction.amount > 0,
            PointsTransaction.transaction_type.in_(EARNING_TRANSACTION_TYPES),
        ]
        if start is not None:
            conditions.append(PointsTransaction.created_at >= start)
        if end is not None:
            conditions.append(PointsTransaction.created_at < end)

        result = await self.db.execute(
            select(
                PointsTransaction.created_at,
                PointsTransaction.source_type,
                PointsTransaction.amount,
            )
            .where(and_(*conditions))
            .order_by(asc(PointsTransaction.created_at), asc(PointsTransaction.id))
        )
        return [
            (as_utc(row.created_at), row.source_type, int(row.amount))
            for row in result.all()
        ]

    # ------------------------------------------------------------------
    # 정합성 검증
    # ------------------------------------------------------------------

    async def verify_integrity_for_user(self, user_id: int) -> PointsIntegrityCheckResponse:
        """
        특정 사용자의 포인트 정합성 검증

        검증 방식:
        1. 각 항목의 balance_before + amount == balance_after, 이전 항목과 연결 확인
        2. 모든 amount 합계와 최신 balance_after 비교
        3. 잔액 테이블 값과 비교
        """
        result = await self.db.execute(
            select(PointsTransaction)
            .where(PointsTransaction.user_id == user_id)
            .order_by(asc(PointsTransaction.created_at), asc(PointsTransaction.id))
        )
        entries = list(result.scalars().all())
        materialized = await self.get_materialized_balance(user_id)
        verified_at = utcnow()

        previous_after = 0
        calculated = 0
        for entry in entries:
            calculated += entry.amount
            if entry.balance_before + entry.amount != entry.balance_after:
                return PointsIntegrityCheckResponse(
                    status="MISMATCH",
                    user_id=user_id,
                    error="balance_before + amount != balance_after",
                    entry_id=entry.id,
                    entry_count=len(entries),
                    verified_at=verified_at,
                )
            if entry.balance_before != previous_after:
                return PointsIntegrityCheckResponse(
                    status="MISMATCH",
                    user_id=user_id,
                    error="balance_before does not continue the previous entry",
                    entry_id=entry.id,
                    entry_count=len(entries),
                    verified_at=verified_at,
                )
            previous_after = entry.balance_after

        recorded = entries[-1].balance_after if entries else 0
        materialized_value = materialized if materialized is not None else 0
        ok = calculated == recorded == materialized_value

        return PointsIntegrityCheckResponse(
            status="OK" if ok else "MISMATCH",
            user_id=user_id,
            calculated_balance=calculated,
            recorded_balance=recorded,
            materialized_balance=materialized,
            entry_count=len(entries),
            error=None if ok else "Balance mismatch between ledger sum, latest entry and balance table",
            verified_at=verified_at,
        )

    async def verify_global_integrity(self) -> PointsIntegrityCheckResponse:
        """전체 잔액 합계와 전체 amount 합계 비교"""
        total_balances = (
            await self.db.execute(select(func.coalesce(func.sum(PointsBalance.balance), 0)))
        ).scalar_one()
        user_count = (
            await self.db.execute(select(func.count(PointsBalance.user_id)))
        ).scalar_one()
        total_amounts, entry_count = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(PointsTransaction.amount), 0),
                    func.count(PointsTransaction.id),
                )
            )
        ).one()

        ok = int(total_balances) == int(total_amounts)
        return PointsIntegrityCheckResponse(
            status="OK" if ok else "MISMATCH",
            total_balances=int(total_balances),
            total_amounts=int(total_amounts),
            user_count=int(user_count),
            entry_count=int(entry_count),
            error=None if ok else "Sum of balances does not equal sum of ledger amounts",
            verified_at=utcnow(),
        )
