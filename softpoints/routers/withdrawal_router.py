"""
출금 / 부스트 API 라우터

- POST /withdrawals/validate: 출금 요청 사전 검증 (모든 오류 반환)
- POST /withdrawals: 출금 요청
- GET /withdrawals: 내 출금 내역
- POST /withdrawals/boost: 포인트로 콘텐츠 부스트 구매
- POST /withdrawals/{id}/complete, /fail: 관리자 지급 결과 반영
"""

from fastapi import APIRouter, Depends, Path, Query, Request

from softpoints.core.auth_middleware import get_current_user, require_admin
from softpoints.deps import get_withdrawal_service
from softpoints.schemas.fraud import RiskContext
from softpoints.schemas.user import User as UserSchema
from softpoints.schemas.withdrawal import (
    BoostRequest,
    BoostResponse,
    WithdrawalEntry,
    WithdrawalFailRequest,
    WithdrawalHistoryResponse,
    WithdrawalRequestCreate,
    WithdrawalResponse,
    WithdrawalValidationResponse,
)
from softpoints.services.withdrawal_service import WithdrawalService

router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


def _risk_context(request: Request, action: str) -> RiskContext:
    # CDN/프록시가 넣어주는 국가 헤더 (없으면 위치 신호 생략)
    country = request.headers.get("cf-ipcountry") or request.headers.get("x-country-code")
    return RiskContext(
        action=action,
        ip_address=request.client.host if request.client else None,
        country=country.upper()[:2] if country and len(country) >= 2 else None,
    )


@router.post("/validate", response_model=WithdrawalValidationResponse)
async def validate_withdrawal(
    body: WithdrawalRequestCreate,
    current_user: UserSchema = Depends(get_current_user),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> WithdrawalValidationResponse:
    errors = await withdrawal_service.validate_withdrawal_request(current_user.id, body)
    return WithdrawalValidationResponse(valid=not errors, errors=errors)


@router.post("", response_model=WithdrawalResponse)
async def request_withdrawal(
    body: WithdrawalRequestCreate,
    request: Request,
    current_user: UserSchema = Depends(get_current_user),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> WithdrawalResponse:
    """
    출금 요청

    검증 실패(rejected), 위험도 차단(restricted), 지급 시작 실패(failed, 포인트 환불)도
    모두 200 과 함께 status 로 구분하여 반환합니다.
    """
    return await withdrawal_service.request_withdrawal(
        current_user.id, body, context=_risk_context(request, "withdrawal")
    )


@router.get("", response_model=WithdrawalHistoryResponse)
async def get_my_withdrawals(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: UserSchema = Depends(get_current_user),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> WithdrawalHistoryResponse:
    return await withdrawal_service.get_withdrawal_history(
        current_user.id, limit=limit, offset=offset
    )


@router.post("/boost", response_model=BoostResponse)
async def buy_boost(
    body: BoostRequest,
    request: Request,
    current_user: UserSchema = Depends(get_current_user),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> BoostResponse:
    """콘텐츠 부스트 구매 (basic 100 / premium 250 / featured 500 포인트)"""
    return await withdrawal_service.spend_soft_points_for_boost(
        current_user.id, body, context=_risk_context(request, "boost")
    )


@router.post("/{withdrawal_id}/complete", response_model=WithdrawalEntry)
async def complete_withdrawal(
    withdrawal_id: int = Path(..., gt=0),
    _: UserSchema = Depends(require_admin),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> WithdrawalEntry:
    return await withdrawal_service.complete_withdrawal(withdrawal_id)


@router.post("/{withdrawal_id}/fail", response_model=WithdrawalEntry)
async def fail_withdrawal(
    body: WithdrawalFailRequest,
    withdrawal_id: int = Path(..., gt=0),
    _: UserSchema = Depends(require_admin),
    withdrawal_service: WithdrawalService = Depends(get_withdrawal_service),
) -> WithdrawalEntry:
    """지급 실패 처리 - 차감된 포인트를 한 번만 환불"""
    return await withdrawal_service.fail_withdrawal(withdrawal_id, reason=body.reason)
