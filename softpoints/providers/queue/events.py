from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from softpoints.models.base import utcnow


class NotificationEvent(BaseModel):
    user_id: int
    kind: str = "softpoints_earned"
    title: str
    message: str
    points: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class WalletSyncEvent(BaseModel):
    user_id: int
    balance: int
    delta: int
    transaction_id: int
    source_type: str
    deduplication_id: str
    wallet_bonus: Optional[Decimal] = None


class PayoutRequestedEvent(BaseModel):
    withdrawal_id: int
    user_id: int
    amount: Decimal
    net_amount: Decimal
    currency: str
    payout_method: str
    payment_details: Dict[str, Any]


class RewardDeadLetterEvent(BaseModel):
    user_id: int
    source_type: str
    source_id: Optional[str]
    amount: int
    error: str
    attempts: int
    failed_at: datetime = Field(default_factory=utcnow)
