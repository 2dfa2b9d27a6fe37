"""
위험도 평가 및 파이오니어 배지 API 라우터
"""

from fastapi import APIRouter, Depends, Query

from softpoints.core.auth_middleware import get_current_user
from softpoints.deps import get_fraud_service
from softpoints.schemas.fraud import (
    FraudRiskAssessment,
    PioneerBadgeInfo,
    PioneerBadgeResponse,
    PioneerEligibilityResponse,
    PioneerLeaderboardResponse,
    PioneerSlotsResponse,
    QualityScoreResponse,
    RiskContext,
    SecurityEventCreate,
)
from softpoints.schemas.user import User as UserSchema
from softpoints.services.fraud_service import FraudService

router = APIRouter(prefix="/fraud", tags=["fraud"])


@router.post("/assess", response_model=FraudRiskAssessment)
async def assess_my_risk(
    context: RiskContext,
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> FraudRiskAssessment:
    """현재 사용자의 위험도 평가 (원장은 읽기만 함)"""
    return await fraud_service.assess_risk(current_user.id, context)


@router.post("/events", status_code=201)
async def record_security_event(
    event: SecurityEventCreate,
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> dict:
    await fraud_service.record_security_event(current_user.id, event)
    return {"success": True}


@router.get("/quality-score", response_model=QualityScoreResponse)
async def get_my_quality_score(
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> QualityScoreResponse:
    return await fraud_service.get_quality_score(current_user.id)


@router.get("/pioneer/eligibility", response_model=PioneerEligibilityResponse)
async def check_pioneer_eligibility(
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> PioneerEligibilityResponse:
    return await fraud_service.check_pioneer_eligibility(current_user.id)


@router.post("/pioneer/claim", response_model=PioneerBadgeResponse)
async def claim_pioneer_badge(
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> PioneerBadgeResponse:
    """파이오니어 배지 신청 (점수 75 이상, 선착순 500명)"""
    return await fraud_service.claim_pioneer_badge(current_user.id)


@router.get("/pioneer/slots", response_model=PioneerSlotsResponse)
async def get_pioneer_slots(
    fraud_service: FraudService = Depends(get_fraud_service),
) -> PioneerSlotsResponse:
    return await fraud_service.get_pioneer_slots()


@router.get("/pioneer/badge", response_model=PioneerBadgeInfo)
async def get_my_pioneer_badge(
    current_user: UserSchema = Depends(get_current_user),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> PioneerBadgeInfo:
    """내 배지 조회 (없으면 404)"""
    return await fraud_service.get_badge(current_user.id)


@router.get("/pioneer/leaderboard", response_model=PioneerLeaderboardResponse)
async def get_pioneer_leaderboard(
    limit: int = Query(100, ge=1, le=500, description="조회 개수"),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> PioneerLeaderboardResponse:
    return await fraud_service.get_leaderboard(limit)
