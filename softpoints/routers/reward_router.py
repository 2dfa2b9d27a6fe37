"""
보상 추적 API 라우터

피처 모듈(마켓플레이스, 영상, 소셜 등)이 도메인 이벤트를 전달하는 진입점입니다.
인증은 선택 사항이며 토큰이 없으면 not_authenticated 결과를 200 으로 반환합니다.
보상 실패는 호출자의 동작을 막지 않도록 항상 결과 객체로 표현됩니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from softpoints.core.auth_middleware import get_current_user_optional
from softpoints.deps import get_reward_service
from softpoints.schemas.rewards import (
    BatchRewardResponse,
    RewardResponse,
    TrackActivityRequest,
    TrackBatchRequest,
    TrackPurchaseRequest,
    TrackReferralRequest,
    TrackSubscriptionRequest,
    TrackTipRequest,
    TrackVideoViewRequest,
)
from softpoints.schemas.user import User as UserSchema
from softpoints.services.reward_service import RewardService

router = APIRouter(prefix="/rewards", tags=["rewards"])


def _user_id(user: Optional[UserSchema]) -> Optional[int]:
    return user.id if user else None


@router.post("/track/video-view", response_model=RewardResponse)
async def track_video_view(
    request: TrackVideoViewRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    """조회수 집계 배치 보상 (1000회당 5포인트)"""
    result = await reward_service.track_video_view(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/tip", response_model=RewardResponse)
async def track_tip(
    request: TrackTipRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    result = await reward_service.track_tip(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/subscription", response_model=RewardResponse)
async def track_subscription(
    request: TrackSubscriptionRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    result = await reward_service.track_subscription(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/purchase", response_model=RewardResponse)
async def track_purchase(
    request: TrackPurchaseRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    """판매 보상 - 판매자 토큰으로 호출 (₦1000당 10포인트)"""
    result = await reward_service.track_purchase(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/referral", response_model=RewardResponse)
async def track_referral(
    request: TrackReferralRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    result = await reward_service.track_referral(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/daily-login", response_model=RewardResponse)
async def track_daily_login(
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    """일일 로그인 보상 - 하루 한 번만 지급"""
    result = await reward_service.track_daily_login(_user_id(current_user))
    return RewardResponse(result=result)


@router.post("/track/activity", response_model=RewardResponse)
async def track_activity(
    request: TrackActivityRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> RewardResponse:
    result = await reward_service.track_activity(_user_id(current_user), request)
    return RewardResponse(result=result)


@router.post("/track/batch", response_model=BatchRewardResponse)
async def track_batch(
    request: TrackBatchRequest,
    current_user: Optional[UserSchema] = Depends(get_current_user_optional),
    reward_service: RewardService = Depends(get_reward_service),
) -> BatchRewardResponse:
    """여러 활동 일괄 처리 - 일부 실패해도 나머지는 적용됨"""
    return await reward_service.track_batch(_user_id(current_user), request.activities)
