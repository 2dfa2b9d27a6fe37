from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskContext(BaseModel):
    """평가 대상 행위의 컨텍스트"""

    action: str = Field("withdrawal", description="withdrawal, boost, trading ...")
    amount: Optional[Decimal] = Field(None, ge=0, description="거래 금액 (USD)")
    ip_address: Optional[str] = None
    country: Optional[str] = Field(None, min_length=2, max_length=2)


class FraudRiskAssessment(BaseModel):
    user_id: int
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    reasons: List[str]
    blocked_actions: List[str]
    assessed_at: datetime

    def blocks(self, action: str) -> bool:
        return action in self.blocked_actions


class SecurityEventCreate(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=50)
    ip_address: Optional[str] = Field(None, max_length=64)
    country: Optional[str] = Field(None, min_length=2, max_length=2)


class Improvement(BaseModel):
    category: str
    description: str
    weight: int
    current_value: float
    target_value: float


class QualityScoreResponse(BaseModel):
    user_id: int
    score: int
    improvements: List[Improvement]
    activity_metrics: Dict[str, Any]


class PioneerEligibilityResponse(BaseModel):
    is_eligible: bool
    has_badge: bool
    current_score: int
    required_score: int
    remaining_slots: int
    badge_number: Optional[int] = None
    improvements: List[Improvement] = Field(default_factory=list)


class PioneerBadgeResponse(BaseModel):
    success: bool
    message: str
    badge_number: Optional[int] = None
    eligibility_score: Optional[int] = None


class PioneerSlotsResponse(BaseModel):
    total_slots: int
    awarded_slots: int
    remaining_slots: int
    next_badge_number: int


class PioneerBadgeInfo(BaseModel):
    user_id: int
    badge_number: int
    eligibility_score: int
    activity_metrics: Optional[Dict[str, Any]] = None
    earned_at: datetime
    nickname: Optional[str] = None


class PioneerLeaderboardResponse(BaseModel):
    badges: List[PioneerBadgeInfo]
    total_count: int
