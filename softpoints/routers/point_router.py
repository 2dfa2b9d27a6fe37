"""
포인트 시스템 API 라우터

사용자용 엔드포인트:
- GET /points/balance: 내 포인트 잔액 조회 (세션 캐시)
- GET /points/ledger: 내 포인트 거래 내역
- GET /points/integrity/my: 내 포인트 정합성 검증
- GET /points/analytics: 기간별 적립/사용 분석
- GET /points/tax-report/{year}: 연간 세금 리포트
- POST /points/transfer: 다른 사용자에게 포인트 이체
- POST /points/session/logout: 세션 종료 (캐시된 잔액 제거)

관리자용 엔드포인트:
- POST /points/admin/adjust: 포인트 조정
- GET /points/admin/ledger/{user_id}: 사용자 거래 내역
- GET /points/admin/integrity/{user_id}: 사용자 정합성 검증
- GET /points/admin/integrity: 전체 정합성 검증
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Path, Query

from softpoints.core.auth_middleware import get_current_user, require_admin
from softpoints.deps import get_point_service
from softpoints.schemas.points import (
    AdminPointsAdjustmentRequest,
    PointsAnalyticsResponse,
    PointsBalanceResponse,
    PointsIntegrityCheckResponse,
    PointsLedgerResponse,
    PointsTransactionResponse,
    PointsTransferRequest,
    PointsTransferResponse,
    TaxReportResponse,
)
from softpoints.schemas.user import User as UserSchema
from softpoints.services.point_service import PointService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=PointsBalanceResponse)
async def get_my_balance(
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> PointsBalanceResponse:
    """
    내 포인트 잔액 조회

    세션 캐시(Redis)가 활성화되어 있으면 캐시된 값을 먼저 반환합니다.
    잔액이 바뀌는 모든 쓰기 후에는 캐시가 무효화됩니다.
    """
    return await point_service.get_user_balance(current_user.id)


@router.get("/ledger", response_model=PointsLedgerResponse)
async def get_my_ledger(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> PointsLedgerResponse:
    """내 포인트 거래 내역 (최신순: created_at DESC, id DESC)"""
    return await point_service.get_user_ledger(current_user.id, limit=limit, offset=offset)


@router.get("/integrity/my", response_model=PointsIntegrityCheckResponse)
async def verify_my_integrity(
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> PointsIntegrityCheckResponse:
    return await point_service.verify_user_integrity(current_user.id)


@router.get("/analytics", response_model=PointsAnalyticsResponse)
async def get_my_analytics(
    period: Literal["day", "week", "month", "year"] = Query("month"),
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> PointsAnalyticsResponse:
    return await point_service.get_analytics(current_user.id, period=period)


@router.get("/tax-report/{year}", response_model=TaxReportResponse)
async def get_my_tax_report(
    year: int = Path(..., ge=2000, le=9998),
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> TaxReportResponse:
    return await point_service.get_tax_report(current_user.id, year)


@router.post("/transfer", response_model=PointsTransferResponse)
async def transfer_points(
    request: PointsTransferRequest,
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> PointsTransferResponse:
    """
    포인트 이체

    HTTP Status:
        200: 이체 완료 (같은 transfer_id 재요청은 기존 결과 반환)
        400: 잔액 부족
        404: 받는 사용자 없음
        422: 자기 자신에게 이체
    """
    return await point_service.transfer_points(current_user.id, request)


@router.post("/session/logout")
async def end_session(
    current_user: UserSchema = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
) -> dict:
    await point_service.end_session(current_user.id)
    return {"success": True}


# ============================================================================
# 관리자
# ============================================================================


@router.post("/admin/adjust", response_model=PointsTransactionResponse)
async def admin_adjust_points(
    request: AdminPointsAdjustmentRequest,
    admin_user: UserSchema = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> PointsTransactionResponse:
    """관리자 포인트 조정 (양수: 보너스, 음수: 페널티)"""
    logger.info(
        f"Admin {admin_user.id} adjusting {request.amount} points for user {request.user_id}"
    )
    return await point_service.admin_adjust_points(request, admin_id=admin_user.id)


@router.get("/admin/ledger/{user_id}", response_model=PointsLedgerResponse)
async def admin_get_user_ledger(
    user_id: int = Path(..., gt=0),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: UserSchema = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> PointsLedgerResponse:
    return await point_service.get_user_ledger(user_id, limit=limit, offset=offset)


@router.get("/admin/integrity/{user_id}", response_model=PointsIntegrityCheckResponse)
async def admin_verify_user_integrity(
    user_id: int = Path(..., gt=0),
    _: UserSchema = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> PointsIntegrityCheckResponse:
    return await point_service.verify_user_integrity(user_id)


@router.get("/admin/integrity", response_model=PointsIntegrityCheckResponse)
async def admin_verify_global_integrity(
    _: UserSchema = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> PointsIntegrityCheckResponse:
    return await point_service.verify_global_integrity()
