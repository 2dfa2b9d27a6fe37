from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ============================================================================
# 도메인 이벤트 요청
# ============================================================================


class TrackVideoViewRequest(BaseModel):
    """영상 조회수 보상 - 조회수 집계 배치 단위로 전달"""

    video_id: str = Field(..., min_length=1, max_length=255)
    views: int = Field(..., ge=0, description="이번 집계 배치의 신규 조회수")
    event_id: Optional[str] = Field(
        None, max_length=255, description="집계 배치 ID (없으면 video_id:views)"
    )


class TrackTipRequest(BaseModel):
    tip_id: str = Field(..., min_length=1, max_length=255)
    count: int = Field(1, ge=1)
    content_id: Optional[str] = Field(None, max_length=255)


class TrackSubscriptionRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1, max_length=255)
    count: int = Field(1, ge=1)


class TrackPurchaseRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, description="주문 금액 (NGN)")
    product_id: Optional[str] = Field(None, max_length=255)


class TrackReferralRequest(BaseModel):
    referred_user_id: int = Field(..., gt=0)


class TrackActivityRequest(BaseModel):
    """게시물/좋아요/댓글 등 참여 보너스"""

    activity: str = Field(..., min_length=1, max_length=50)
    target_id: str = Field(..., min_length=1, max_length=255)


class ActivityEvent(BaseModel):
    """배치 처리용 단일 활동"""

    kind: Literal[
        "video_view", "tip", "subscription", "purchase", "referral", "daily_login", "activity"
    ]
    video_view: Optional[TrackVideoViewRequest] = None
    tip: Optional[TrackTipRequest] = None
    subscription: Optional[TrackSubscriptionRequest] = None
    purchase: Optional[TrackPurchaseRequest] = None
    referral: Optional[TrackReferralRequest] = None
    activity: Optional[TrackActivityRequest] = None


class TrackBatchRequest(BaseModel):
    activities: List[ActivityEvent] = Field(..., min_length=1, max_length=100)


# ============================================================================
# 보상 결과 (status 로 구분되는 태그 유니온)
# ============================================================================


class NotAuthenticated(BaseModel):
    status: Literal["not_authenticated"] = "not_authenticated"
    success: Literal[False] = False
    soft_points: int = 0


class Awarded(BaseModel):
    status: Literal["awarded"] = "awarded"
    success: Literal[True] = True
    soft_points: int
    wallet_bonus: Optional[Decimal] = None
    transaction_id: int
    balance_after: int
    source_type: str
    duplicate: bool = Field(False, description="이미 처리된 이벤트 (이전 결과 반환)")


class Skipped(BaseModel):
    status: Literal["skipped"] = "skipped"
    success: Literal[False] = False
    soft_points: int = 0
    reason: str


class Failed(BaseModel):
    status: Literal["failed"] = "failed"
    success: Literal[False] = False
    soft_points: int = 0
    reason: str


RewardResult = Annotated[
    Union[NotAuthenticated, Awarded, Skipped, Failed], Field(discriminator="status")
]


class RewardResponse(BaseModel):
    result: RewardResult


class BatchRewardResponse(BaseModel):
    results: List[RewardResult]
    total_points: int
    awarded_count: int
    failed_count: int
